from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

_log = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parents[2]


def truthy(value: str) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default)


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)).strip() or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return int(default)


def data_dir() -> Path:
    return Path(env_str("DATA_DIR", "") or APP_ROOT / "data")


def uploads_dir() -> Path:
    return Path(env_str("UPLOADS_DIR", "") or APP_ROOT / "uploads")


def question_bank_path() -> Path:
    raw = env_str("QUESTION_BANK_PATH", "")
    if raw:
        return Path(raw)
    return data_dir() / "question_bank.json"


def model_registry_path() -> Path:
    return Path(env_str("MODEL_REGISTRY_PATH", "") or APP_ROOT / "config" / "model_registry.yaml")


def teacher_ai_daily_limit() -> int:
    return max(1, env_int("TEACHER_AI_DAILY_LIMIT", 15))


def teacher_ai_limit_retention_days() -> int:
    return max(1, env_int("TEACHER_AI_LIMIT_RETENTION_DAYS", 2))


def document_min_chars() -> int:
    return max(0, env_int("DOCUMENT_MIN_CHARS", 50))


def document_prompt_max_chars() -> int:
    return max(1000, env_int("DOCUMENT_PROMPT_MAX_CHARS", 20000))


def document_generation_attempts() -> int:
    return max(1, env_int("DOCUMENT_GENERATION_ATTEMPTS", 3))


def cors_allow_origins() -> List[str]:
    raw = env_str("CORS_ALLOW_ORIGINS", "http://localhost:5173,http://localhost:5174")
    extra = env_str("FRONTEND_URL", "").strip()
    origins = [item.strip() for item in raw.split(",") if item.strip()]
    if extra and extra not in origins:
        origins.append(extra)
    return origins or ["*"]


def api_host() -> str:
    return env_str("HOST", "0.0.0.0").strip() or "0.0.0.0"


def api_port() -> int:
    return env_int("PORT", 5000)
