from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, File, Form, UploadFile

from ..api_models import QuestionBatchSaveRequest, draft_payloads
from ..auth_service import ADMIN_ROLE, require_principal
from ..container import AppContainer, batch_save_deps, upload_deps
from ..question_dedupe_service import save_question_batch
from ..question_errors import InvalidQuestionRequestError, QuestionPipelineError
from ..question_upload_service import upload_question_document

_log = logging.getLogger(__name__)


def build_router(container: AppContainer) -> APIRouter:
    router = APIRouter(prefix="/api/admin")

    @router.post("/upload")
    async def admin_upload(
        file: Optional[UploadFile] = File(None),
        className: Optional[str] = Form(None),
        subject: Optional[str] = Form(None),
        chapter: Optional[str] = Form(None),
        unit: Optional[str] = Form(None),
    ) -> Any:
        require_principal(roles=(ADMIN_ROLE,))
        meta = {"className": className, "subject": subject, "chapter": chapter, "unit": unit}
        return await upload_question_document(file, meta, deps=upload_deps(container))

    @router.post("/save")
    def admin_save(req: QuestionBatchSaveRequest) -> Any:
        require_principal(roles=(ADMIN_ROLE,))
        drafts = draft_payloads(req.questions)
        if not drafts:
            raise InvalidQuestionRequestError("No questions provided")
        try:
            return save_question_batch(drafts, deps=batch_save_deps(container))
        except Exception as exc:
            _log.exception("question batch save failed")
            raise QuestionPipelineError(f"Failed to save questions: {exc}", status_code=500) from exc

    return router
