from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from .daily_limit import DailyRequestLimiter
from .question_errors import GenerationFailedError, InvalidQuestionRequestError
from .question_generation_service import QuestionGenerationDeps, generate_once
from .question_prompt_builder import build_freeform_prompt, clamp_question_count
from .question_response_parser import parse_tolerant_questions

_log = logging.getLogger(__name__)

MIN_RESPONSE_CHARS = 5
EMPTY_RESPONSE_DETAIL = "AI returned an empty response. Please try being more specific with your instructions."


@dataclass(frozen=True)
class TeacherAiDeps:
    limiter: DailyRequestLimiter
    generation: QuestionGenerationDeps
    model_label: str = "deepseek-chat"
    provider_label: str = "Shifu"


def _field(payload: Mapping[str, Any], key: str) -> str:
    return str(payload.get(key) or "").strip()


def generate_teacher_questions(
    payload: Mapping[str, Any],
    *,
    user_id: str,
    deps: TeacherAiDeps,
) -> Dict[str, Any]:
    class_name = _field(payload, "className")
    subject = _field(payload, "subject")
    instruction = _field(payload, "instruction")
    if not class_name or not subject or not instruction:
        raise InvalidQuestionRequestError("Missing required context (Class, Subject, or Instructions)")

    used = deps.limiter.check_and_increment(user_id)
    count = clamp_question_count(payload.get("count"))
    requested_type = _field(payload, "questionType")
    _log.info(
        "teacher ai request user=%s used=%d/%d count=%d type=%s",
        user_id,
        used,
        deps.limiter.limit,
        count,
        requested_type or "-",
    )

    prompt = build_freeform_prompt(class_name, subject, instruction, count)
    raw_text = generate_once(prompt, deps=deps.generation)
    if not raw_text or len(raw_text.strip()) < MIN_RESPONSE_CHARS:
        raise GenerationFailedError(EMPTY_RESPONSE_DETAIL)

    questions = parse_tolerant_questions(raw_text, requested_type, count)
    return {
        "success": True,
        "questions": questions,
        "model": deps.model_label,
        "provider": deps.provider_label,
    }
