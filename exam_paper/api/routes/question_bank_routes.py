from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter

from ..api_models import QuestionBankCreateRequest, QuestionBankUpdateRequest
from ..auth_service import ADMIN_ROLE, TEACHER_ROLE, require_principal
from ..container import AppContainer
from ..question_errors import InvalidQuestionRequestError, QuestionNotFoundError

_log = logging.getLogger(__name__)


def _require_admin() -> None:
    require_principal(roles=(ADMIN_ROLE,))


def build_router(container: AppContainer) -> APIRouter:
    router = APIRouter(prefix="/api/question-bank")
    store = container.store

    @router.get("")
    def list_question_bank(
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        topic: Optional[str] = None,
        unit: Optional[str] = None,
        className: Optional[str] = None,
        type: Optional[str] = None,
    ) -> Any:
        require_principal(roles=(ADMIN_ROLE, TEACHER_ROLE))
        filters: Dict[str, Any] = {
            "subject": subject,
            "chapter": chapter,
            "topic": topic,
            "unit": unit,
            "className": className,
            "type": type,
        }
        return store.list_questions(filters)

    @router.post("")
    def create_question_bank_entry(req: QuestionBankCreateRequest) -> Any:
        _require_admin()
        if not str(req.text or "").strip() or not str(req.type or "").strip():
            raise InvalidQuestionRequestError("Text and Type are required")
        try:
            record = store.create_question(req.model_dump())
        except ValueError as exc:
            raise InvalidQuestionRequestError(str(exc)) from exc
        _log.info("question bank entry created id=%s", record.get("id"))
        return record

    @router.put("/{question_id}")
    def update_question_bank_entry(question_id: int, req: QuestionBankUpdateRequest) -> Any:
        _require_admin()
        try:
            record = store.update_question(question_id, req.model_dump(exclude_unset=True))
        except ValueError as exc:
            raise InvalidQuestionRequestError(str(exc)) from exc
        if record is None:
            raise QuestionNotFoundError()
        return record

    @router.delete("/{question_id}")
    def delete_question_bank_entry(question_id: int) -> Any:
        _require_admin()
        if not store.delete_question(question_id):
            raise QuestionNotFoundError()
        return {"message": "Question deleted successfully"}

    return router
