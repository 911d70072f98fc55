from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class QuestionDraftModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[Any] = None
    type: Optional[str] = None
    options: Optional[List[Any]] = None
    answer: Optional[Any] = None
    className: Optional[Any] = None
    subject: Optional[str] = None
    chapter: Optional[str] = None
    unit: Optional[str] = None
    topic: Optional[str] = None


class QuestionBatchSaveRequest(BaseModel):
    questions: Optional[List[QuestionDraftModel]] = None


class TeacherGenerateRequest(BaseModel):
    className: Optional[Any] = None
    subject: Optional[Any] = None
    instruction: Optional[Any] = None
    questionType: Optional[Any] = None
    count: Optional[Any] = None


class QuestionBankCreateRequest(BaseModel):
    text: Optional[str] = None
    type: Optional[str] = None
    options: Optional[Union[List[Any], str]] = None
    answer: Optional[str] = None
    subject: Optional[str] = None
    chapter: Optional[str] = None
    topic: Optional[str] = None
    unit: Optional[str] = None
    className: Optional[str] = None


class QuestionBankUpdateRequest(QuestionBankCreateRequest):
    pass


def draft_payloads(models: Optional[List[QuestionDraftModel]]) -> List[Dict[str, Any]]:
    return [model.model_dump() for model in models or []]
