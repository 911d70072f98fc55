from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .document_text_service import (
    SUPPORTED_EXTENSIONS,
    ensure_document_density,
    extract_document_text,
    normalize_extension,
    remove_upload_file,
)
from .question_errors import InvalidQuestionRequestError, NoQuestionsExtractedError, UnsupportedFormatError
from .question_generation_service import QuestionGenerationDeps, generate_with_retry
from .question_prompt_builder import DOCUMENT_SOURCE_MAX_CHARS, build_document_prompt
from .question_response_parser import parse_strict_questions

_log = logging.getLogger(__name__)

UPLOAD_META_FIELDS = ("className", "subject", "chapter", "unit")


@dataclass(frozen=True)
class QuestionUploadDeps:
    uploads_dir: Path
    generation: QuestionGenerationDeps
    save_upload_file: Callable[[Any, Path], Awaitable[Any]]
    run_in_threadpool: Callable[[Callable[..., Any]], Awaitable[Any]]
    extract_text: Callable[[bytes, str], str] = extract_document_text
    min_chars: int = 50
    prompt_max_chars: int = DOCUMENT_SOURCE_MAX_CHARS
    max_attempts: int = 3


def validate_upload_meta(meta: Mapping[str, Any]) -> Dict[str, str]:
    cleaned = {key: str(meta.get(key) or "").strip() for key in UPLOAD_META_FIELDS}
    if not all(cleaned.values()):
        raise InvalidQuestionRequestError("Missing metadata (className, subject, chapter, unit)")
    return cleaned


def _upload_dest(uploads_dir: Path, extension: str) -> Path:
    # Client filenames never reach the filesystem.
    return uploads_dir / f"question_upload_{uuid.uuid4().hex[:16]}{extension}"


def questions_from_document_text(
    text: str,
    meta: Mapping[str, str],
    *,
    deps: QuestionUploadDeps,
) -> List[Dict[str, Any]]:
    ensure_document_density(text, min_chars=deps.min_chars)
    prompt = build_document_prompt(text, meta, max_chars=deps.prompt_max_chars)
    class_name = str(meta.get("className") or "")
    return generate_with_retry(
        prompt,
        deps=deps.generation,
        max_attempts=deps.max_attempts,
        parse=lambda raw: parse_strict_questions(raw, class_name),
    )


def process_saved_document(
    path: Path,
    extension: str,
    meta: Mapping[str, str],
    *,
    deps: QuestionUploadDeps,
) -> List[Dict[str, Any]]:
    data = path.read_bytes()
    text = deps.extract_text(data, extension)
    _log.info("document text extracted ext=%s chars=%d", extension, len(text))
    return questions_from_document_text(text, meta, deps=deps)


async def upload_question_document(
    upload: Optional[Any],
    meta: Mapping[str, Any],
    *,
    deps: QuestionUploadDeps,
) -> Dict[str, Any]:
    """Turn one uploaded PDF/DOCX/TXT into draft questions.

    Nothing is persisted; the temporary upload is removed on every path.
    Raises ``QuestionPipelineError`` subclasses carrying the HTTP status.
    """
    if upload is None or not str(getattr(upload, "filename", "") or "").strip():
        raise InvalidQuestionRequestError("No file uploaded")
    cleaned = validate_upload_meta(meta)

    extension = normalize_extension(str(upload.filename))
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError()

    dest = _upload_dest(deps.uploads_dir, extension)
    try:
        await deps.save_upload_file(upload, dest)
        questions = await deps.run_in_threadpool(
            partial(process_saved_document, dest, extension, cleaned, deps=deps)
        )
    finally:
        remove_upload_file(dest)

    if not questions:
        raise NoQuestionsExtractedError()
    _log.info(
        "document upload produced %d question(s) class=%s subject=%s",
        len(questions),
        cleaned["className"],
        cleaned["subject"],
    )
    return {"success": True, "count": len(questions), "questions": questions}
