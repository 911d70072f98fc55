"""Per-request id carried through logs.

The HTTP middleware in ``app.py`` binds an id for every request (reusing an
inbound ``x-request-id`` header when present) and echoes it on the response.
"""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]


def inbound_request_id(header_value: str) -> str:
    value = str(header_value or "").strip()
    if value and len(value) <= 64 and value.replace("-", "").isalnum():
        return value
    return new_request_id()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = REQUEST_ID.get("") or "-"  # type: ignore[attr-defined]
        return True
