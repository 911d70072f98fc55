from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from ..api_models import TeacherGenerateRequest
from ..auth_service import ADMIN_ROLE, TEACHER_ROLE, principal_user_id, require_principal
from ..container import AppContainer, teacher_ai_deps
from ..teacher_ai_service import generate_teacher_questions


def build_router(container: AppContainer) -> APIRouter:
    router = APIRouter(prefix="/api/ai")

    @router.post("/teacher-generate")
    def teacher_generate(req: TeacherGenerateRequest) -> Any:
        principal = require_principal(roles=(ADMIN_ROLE, TEACHER_ROLE))
        return generate_teacher_questions(
            req.model_dump(),
            user_id=principal_user_id(principal),
            deps=teacher_ai_deps(container),
        )

    return router
