"""Process-wide logging for the question API.

``LOG_FORMAT=json`` emits one JSON object per line for log shippers; any
other value gives plain text. ``LOG_LEVEL`` sets the root level (INFO by
default). Every record carries the current request id, or ``-`` outside a
request.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .request_context import RequestIdFilter
from .settings import env_str

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"
# PDF parsers log per-object detail at DEBUG/INFO; keep them at WARNING even when LOG_LEVEL=debug.
NOISY_PARSER_LOGGERS = ("pdfminer", "pdfplumber")


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _root_level() -> int:
    level = logging.getLevelName(env_str("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestIdFilter())
    if env_str("LOG_FORMAT", "text").strip().lower() == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    # Re-running on app reload must not stack handlers.
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(_root_level())
    for name in NOISY_PARSER_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))
