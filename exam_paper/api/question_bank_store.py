from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .question_dedupe_service import normalize_question_text
from .question_errors import DuplicateQuestionError

_log = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("text", "type", "options", "answer", "subject", "chapter", "topic", "unit", "className")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".{uuid.uuid4().hex}.tmp")
    try:
        with tmp.open("w", encoding="utf-8") as out:
            json.dump(payload, out, ensure_ascii=False, indent=2)
            out.flush()
            os.fsync(out.fileno())
        tmp.replace(path)
    finally:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            _log.debug("failed to clean up temp file %s", tmp)


def _coerce_options(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def _matches_contains(value: Any, needle: str) -> bool:
    return needle.lower() in str(value or "").lower()


def _matches_equals(value: Any, expected: str) -> bool:
    return str(value or "").lower() == expected.lower()


class QuestionBankStore:
    """Question bank persisted as one JSON document.

    Normalized question text is unique across the bank; ``create_question``
    and ``update_question`` raise ``DuplicateQuestionError`` on a clash.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"next_id": 1, "questions": []}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"question bank file is not a JSON object: {self.path}")
        questions = data.get("questions") if isinstance(data.get("questions"), list) else []
        next_id = int(data.get("next_id") or 0)
        if next_id <= 0:
            next_id = max((int(q.get("id") or 0) for q in questions), default=0) + 1
        return {"next_id": next_id, "questions": questions}

    def _save(self, data: Dict[str, Any]) -> None:
        atomic_write_json(self.path, data)

    @staticmethod
    def _clashes(questions: List[Dict[str, Any]], text: str, *, ignore_id: Optional[int] = None) -> bool:
        normalized = normalize_question_text(text)
        for q in questions:
            if ignore_id is not None and q.get("id") == ignore_id:
                continue
            if normalize_question_text(q.get("text")) == normalized:
                return True
        return False

    def existing_texts(self) -> List[str]:
        with self._lock:
            return [str(q.get("text") or "") for q in self._load()["questions"]]

    def list_questions(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        f = {k: str(v).strip() for k, v in (filters or {}).items() if v is not None and str(v).strip()}
        with self._lock:
            questions = list(self._load()["questions"])
        items = []
        for q in questions:
            if "subject" in f and not _matches_contains(q.get("subject"), f["subject"]):
                continue
            if "chapter" in f and not _matches_equals(q.get("chapter"), f["chapter"]):
                continue
            if "topic" in f and not _matches_contains(q.get("topic"), f["topic"]):
                continue
            if "unit" in f and not _matches_equals(q.get("unit"), f["unit"]):
                continue
            if "className" in f and str(q.get("className") or "") != f["className"]:
                continue
            if "type" in f and str(q.get("type") or "") != f["type"]:
                continue
            items.append(dict(q))
        items.sort(key=lambda q: (str(q.get("createdAt") or ""), int(q.get("id") or 0)), reverse=True)
        return items

    def get_question(self, question_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            for q in self._load()["questions"]:
                if q.get("id") == int(question_id):
                    return dict(q)
        return None

    def create_question(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        text = str(payload.get("text") or "").strip()
        if not normalize_question_text(text):
            raise ValueError("question text required")
        with self._lock:
            data = self._load()
            if self._clashes(data["questions"], text):
                raise DuplicateQuestionError()
            record: Dict[str, Any] = {"id": data["next_id"]}
            for key in _EDITABLE_FIELDS:
                record[key] = payload.get(key)
            record["text"] = text
            record["options"] = _coerce_options(payload.get("options"))
            record["createdAt"] = _now_iso()
            data["questions"].append(record)
            data["next_id"] += 1
            self._save(data)
        return dict(record)

    def update_question(self, question_id: int, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        qid = int(question_id)
        with self._lock:
            data = self._load()
            target = next((q for q in data["questions"] if q.get("id") == qid), None)
            if target is None:
                return None
            for key in _EDITABLE_FIELDS:
                if key not in changes or changes.get(key) is None:
                    continue
                value = changes.get(key)
                if key == "options":
                    value = _coerce_options(value)
                if key == "text":
                    value = str(value).strip()
                    if not normalize_question_text(value):
                        raise ValueError("question text required")
                    if self._clashes(data["questions"], value, ignore_id=qid):
                        raise DuplicateQuestionError()
                target[key] = value
            self._save(data)
            return dict(target)

    def delete_question(self, question_id: int) -> bool:
        qid = int(question_id)
        with self._lock:
            data = self._load()
            remaining = [q for q in data["questions"] if q.get("id") != qid]
            if len(remaining) == len(data["questions"]):
                return False
            data["questions"] = remaining
            self._save(data)
        return True
