"""Tests for logging_config and request_context."""
from __future__ import annotations

import json
import logging

from exam_paper.api.logging_config import JsonLineFormatter, configure_logging
from exam_paper.api.request_context import REQUEST_ID, RequestIdFilter, inbound_request_id


def _record(msg="hello %s", args=("world",)):
    return logging.LogRecord("exam_paper.test", logging.INFO, __file__, 1, msg, args, None)


def test_request_id_filter_defaults_to_dash():
    record = _record()
    assert RequestIdFilter().filter(record) is True
    assert record.request_id == "-"


def test_request_id_filter_uses_bound_id():
    token = REQUEST_ID.set("rid-1")
    try:
        record = _record()
        RequestIdFilter().filter(record)
    finally:
        REQUEST_ID.reset(token)
    assert record.request_id == "rid-1"


def test_inbound_request_id_rejects_unsafe_values():
    assert inbound_request_id("req-42") == "req-42"
    generated = inbound_request_id("bad id\nwith newline")
    assert generated != "bad id\nwith newline"
    assert len(generated) == 16
    assert len(inbound_request_id("")) == 16


def test_json_formatter_includes_request_id():
    record = _record()
    record.request_id = "rid-2"
    payload = json.loads(JsonLineFormatter().format(record))
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "rid-2"


def test_configure_logging_json_mode(monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "json")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonLineFormatter)
    finally:
        for h in root.handlers[:]:
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_configure_logging_quiets_pdf_parsers(monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "text")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    parser_loggers = [logging.getLogger(name) for name in ("pdfminer", "pdfplumber")]
    saved_parser_levels = [lg.level for lg in parser_loggers]
    try:
        configure_logging()
        assert root.level == logging.DEBUG
        assert [lg.level for lg in parser_loggers] == [logging.WARNING, logging.WARNING]
    finally:
        for h in root.handlers[:]:
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        for lg, level in zip(parser_loggers, saved_parser_levels):
            lg.setLevel(level)
