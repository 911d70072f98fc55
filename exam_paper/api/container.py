from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Optional

from starlette.concurrency import run_in_threadpool

from llm_gateway import LLMGateway

from . import settings
from .daily_limit import DailyRequestLimiter
from .document_text_service import save_upload_file
from .question_bank_store import QuestionBankStore
from .question_dedupe_service import QuestionBatchSaveDeps
from .question_generation_service import QuestionGenerationDeps
from .question_upload_service import QuestionUploadDeps
from .teacher_ai_service import TeacherAiDeps


@dataclass(frozen=True)
class AppContainer:
    store: QuestionBankStore
    gateway: Any
    limiter: DailyRequestLimiter
    uploads_dir: Path
    data_dir: Path


def _generation_deps(gateway: Any, kind: str) -> QuestionGenerationDeps:
    return QuestionGenerationDeps(generate_text=partial(gateway.generate_text, kind=kind))


def upload_deps(container: AppContainer) -> QuestionUploadDeps:
    return QuestionUploadDeps(
        uploads_dir=container.uploads_dir,
        generation=_generation_deps(container.gateway, "document_questions"),
        save_upload_file=partial(save_upload_file, run_in_threadpool=run_in_threadpool),
        run_in_threadpool=run_in_threadpool,
        min_chars=settings.document_min_chars(),
        prompt_max_chars=settings.document_prompt_max_chars(),
        max_attempts=settings.document_generation_attempts(),
    )


def teacher_ai_deps(container: AppContainer) -> TeacherAiDeps:
    return TeacherAiDeps(
        limiter=container.limiter,
        generation=_generation_deps(container.gateway, "teacher_ai"),
        model_label=container.gateway.model_label() or "deepseek-chat",
    )


def batch_save_deps(container: AppContainer) -> QuestionBatchSaveDeps:
    return QuestionBatchSaveDeps(
        existing_texts=container.store.existing_texts,
        create_question=container.store.create_question,
    )


def build_app_container(
    *,
    gateway: Optional[Any] = None,
    store: Optional[QuestionBankStore] = None,
    limiter: Optional[DailyRequestLimiter] = None,
) -> AppContainer:
    return AppContainer(
        store=store or QuestionBankStore(settings.question_bank_path()),
        gateway=gateway or LLMGateway(registry_path=settings.model_registry_path()),
        limiter=limiter
        or DailyRequestLimiter(
            settings.teacher_ai_daily_limit(),
            retention_days=settings.teacher_ai_limit_retention_days(),
        ),
        uploads_dir=settings.uploads_dir(),
        data_dir=settings.data_dir(),
    )
