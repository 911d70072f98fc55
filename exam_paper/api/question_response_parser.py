from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from .question_errors import InvalidAIResponseError

_log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.I)

_QUESTION_START_RE = re.compile(r"^(\d+\.|\d+\)|Q:|###|Question|\*\*Question)", re.I)
_QUESTION_PREFIX_RE = re.compile(r"^(###|\*\*|\d+\.|\d+\)|Q:)\s*(Question\s*\d*:?)?\s*", re.I)
_BARE_QUESTION_PREFIX_RE = re.compile(r"^(\*\*)?Question(?=[\s\d:.)]|$)\s*\d*\s*[:.)]?\s*", re.I)
_OPTION_RE = re.compile(r"^[A-D](\.|\))", re.I)
_OPTION_PREFIX_RE = re.compile(r"^[A-D](\.|\))\s*", re.I)
_ANSWER_RE = re.compile(r"^(Ans|Correct|Answer|✅)\s*(Answer)?\s*:", re.I)
_ANSWER_PREFIX_RE = re.compile(r"^(Ans|Correct|Answer|✅)\s*(Answer)?\s*:\s*", re.I)
_BOLD_SUFFIX_RE = re.compile(r"\*\*$")
_BOLD_PREFIX_RE = re.compile(r"^\*\*\s*")

FALLBACK_TEXT_CHARS = 500


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", str(text or "")).strip()


def extract_json_array(text: str) -> Optional[List[Any]]:
    """Best-effort recovery of a JSON array from model output; None when there is none."""
    cleaned = strip_code_fences(text)
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    try:
        parsed = json.loads(cleaned)
    except Exception:
        _log.debug("JSON array parse failed", exc_info=True)
        return None
    if not isinstance(parsed, list):
        return None
    return parsed


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False) if isinstance(value, (dict, list)) else str(value)


def parse_strict_questions(raw_text: str, class_name: str = "") -> List[Dict[str, Any]]:
    parsed = extract_json_array(raw_text)
    if parsed is None:
        preview = strip_code_fences(raw_text)[:100]
        _log.warning("strict question parse failed preview=%r", preview)
        raise InvalidAIResponseError()

    questions: List[Dict[str, Any]] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        question = dict(item)
        # Models sometimes emit numbers or booleans; drafts carry strings only.
        for key in ("text", "answer"):
            if key in question:
                question[key] = _as_text(question[key])
        if isinstance(question.get("options"), list):
            question["options"] = [_as_text(option) for option in question["options"]]
        question["className"] = _as_text(item.get("className") or item.get("class") or class_name)
        question["type"] = str(item.get("type") or "MCQ").strip().upper()
        questions.append(question)
    return questions


def _clean_line_value(text: str) -> str:
    return _BOLD_SUFFIX_RE.sub("", text).strip()


def _questions_from_json(items: List[Any], requested_type: str) -> List[Dict[str, Any]]:
    questions: List[Dict[str, Any]] = []
    for item in items:
        q = item if isinstance(item, dict) else {}
        options = q.get("options")
        questions.append(
            {
                "type": q.get("type") or requested_type or "SHORT",
                "question": q.get("question") or q.get("text") or "Untitled Question",
                "options": list(options) if isinstance(options, list) else [],
                "answer": q.get("answer") or "",
            }
        )
    return questions


def _questions_from_lines(raw_text: str, requested_type: str) -> List[Dict[str, Any]]:
    lines = [line.strip() for line in str(raw_text or "").split("\n")]
    questions: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None

    for line in lines:
        if len(line) <= 2:
            continue
        if _QUESTION_START_RE.match(line):
            if current:
                questions.append(current)
            text = _QUESTION_PREFIX_RE.sub("", line, count=1)
            text = _BARE_QUESTION_PREFIX_RE.sub("", text, count=1)
            text = _BOLD_PREFIX_RE.sub("", text, count=1)
            current = {
                "type": requested_type or "SHORT",
                "question": _clean_line_value(text),
                "options": [],
                "answer": "",
            }
        elif current is not None and _OPTION_RE.match(line):
            current["type"] = "MCQ"
            current["options"].append(_clean_line_value(_OPTION_PREFIX_RE.sub("", line, count=1)))
        elif current is not None and _ANSWER_RE.match(line):
            current["answer"] = _clean_line_value(_ANSWER_PREFIX_RE.sub("", line, count=1))

    if current:
        questions.append(current)
    return questions


def parse_tolerant_questions(raw_text: str, requested_type: str = "", requested_count: int = 5) -> List[Dict[str, Any]]:
    """Always returns between 1 and ``requested_count`` question drafts."""
    limit = max(1, int(requested_count or 1))
    kind = str(requested_type or "").strip()

    items = extract_json_array(raw_text)
    if items:
        return _questions_from_json(items, kind)[:limit]
    _log.info("tolerant parse: JSON extraction failed, falling back to line heuristics")

    questions = _questions_from_lines(raw_text, kind)
    if questions:
        return questions[:limit]

    return [
        {
            "type": kind or "LONG",
            "question": str(raw_text or "")[:FALLBACK_TEXT_CHARS],
            "options": [],
            "answer": "",
        }
    ]
