from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse

from ..container import AppContainer

_log = logging.getLogger(__name__)
MIN_FREE_DISK_MB = 100


def _nearest_existing(path: Path) -> Path:
    while not path.exists() and path.parent != path:
        path = path.parent
    return path


def disk_check(data_dir: Path) -> Dict[str, Any]:
    try:
        free_mb = shutil.disk_usage(str(_nearest_existing(data_dir))).free // (1024 * 1024)
    except OSError as exc:
        _log.warning("disk usage unavailable for %s", data_dir, exc_info=True)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok" if free_mb >= MIN_FREE_DISK_MB else "degraded", "free_mb": int(free_mb)}


def question_bank_check(container: AppContainer) -> Dict[str, Any]:
    try:
        total = len(container.store.existing_texts())
    except (OSError, ValueError) as exc:
        _log.warning("question bank unreadable", exc_info=True)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "questions": total}


def build_router(container: AppContainer) -> APIRouter:
    router = APIRouter()

    @router.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "AI Exam Generator API is running"

    @router.get("/health")
    def health() -> Any:
        checks = {
            "disk": disk_check(container.data_dir),
            "question_bank": question_bank_check(container),
        }
        healthy = all(check.get("status") == "ok" for check in checks.values())
        return JSONResponse(
            content={"status": "ok" if healthy else "degraded", "checks": checks},
            status_code=200 if healthy else 503,
        )

    return router
