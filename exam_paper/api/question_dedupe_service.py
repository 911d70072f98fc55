from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .question_errors import DuplicateQuestionError

_log = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_PUNCT_RE = re.compile(r"[.,!?;:]+$")


def normalize_question_text(text: Any) -> str:
    value = _WHITESPACE_RE.sub(" ", str(text or "").lower().strip())
    # Stripping punctuation can expose trailing whitespace ("what ?"), so loop to a fixed point.
    while True:
        stripped = _TRAILING_PUNCT_RE.sub("", value).rstrip()
        if stripped == value:
            return value
        value = stripped


@dataclass
class QuestionBatchFilter:
    accepted: List[Dict[str, Any]] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_batch_duplicate: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_existing + self.skipped_batch_duplicate


def filter_question_batch(drafts: Iterable[Mapping[str, Any]], existing_texts: Iterable[str]) -> QuestionBatchFilter:
    existing: Set[str] = {normalize_question_text(text) for text in existing_texts}
    seen: Set[str] = set()
    result = QuestionBatchFilter()
    for draft in drafts:
        normalized = normalize_question_text(draft.get("text"))
        if not normalized:
            continue
        if normalized in existing:
            result.skipped_existing += 1
            continue
        if normalized in seen:
            result.skipped_batch_duplicate += 1
            continue
        seen.add(normalized)
        result.accepted.append(dict(draft))
    return result


@dataclass(frozen=True)
class QuestionBatchSaveDeps:
    existing_texts: Callable[[], List[str]]
    create_question: Callable[[Dict[str, Any]], Dict[str, Any]]


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _bank_record_payload(draft: Mapping[str, Any]) -> Dict[str, Any]:
    options = draft.get("options")
    unit = draft.get("unit")
    return {
        "text": str(draft.get("text") or "").strip(),
        "type": draft.get("type"),
        "options": list(options) if isinstance(options, list) else [],
        "answer": _optional_text(draft.get("answer")),
        "subject": draft.get("subject"),
        "chapter": draft.get("chapter"),
        "topic": unit or draft.get("topic"),
        "unit": unit,
        "className": _optional_text(draft.get("className")),
    }


def save_question_batch(drafts: List[Mapping[str, Any]], *, deps: QuestionBatchSaveDeps) -> Dict[str, Any]:
    filtered = filter_question_batch(drafts, deps.existing_texts())
    if not filtered.accepted:
        return {
            "success": True,
            "count": 0,
            "skipped": filtered.skipped,
            "message": (
                "All questions already exist in the bank. "
                f"{filtered.skipped_existing} duplicate(s) found in database, "
                f"{filtered.skipped_batch_duplicate} duplicate(s) in batch."
            ),
        }

    saved = 0
    conflicts = 0
    for draft in filtered.accepted:
        try:
            deps.create_question(_bank_record_payload(draft))
            saved += 1
        except DuplicateQuestionError:
            # Another request stored the same text after our snapshot.
            conflicts += 1

    total_skipped = filtered.skipped + conflicts
    _log.info(
        "question batch saved=%d skipped_existing=%d skipped_batch=%d conflicts=%d",
        saved,
        filtered.skipped_existing,
        filtered.skipped_batch_duplicate,
        conflicts,
    )
    message = f"Successfully saved {saved} new question(s)."
    if total_skipped > 0:
        message += f" Skipped {total_skipped} duplicate(s)."
    return {"success": True, "count": saved, "skipped": total_skipped, "message": message}
