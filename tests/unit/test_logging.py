"""Unit tests for structured log rendering."""

from __future__ import annotations

import json
import logging
import sys

import pytest
import structlog

from askly.core.config import Settings
from askly.core.logging import build_formatter, setup_logging


def _record(msg: str, *args, **extra) -> logging.LogRecord:
    return logging.makeLogRecord(
        {
            "name": "askly.auth.middleware",
            "levelno": logging.WARNING,
            "levelname": "WARNING",
            "msg": msg,
            "args": args,
            **extra,
        }
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestFormatter:
    def test_json_line_carries_extra_fields(self) -> None:
        line = build_formatter("json").format(
            _record("Bypass used on %s", "/api/v1/documents", security_event="dev_bypass")
        )

        payload = json.loads(line)
        assert payload["event"] == "Bypass used on /api/v1/documents"
        assert payload["level"] == "warning"
        assert payload["logger"] == "askly.auth.middleware"
        assert payload["security_event"] == "dev_bypass"
        assert "timestamp" in payload

    def test_json_includes_traceback(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record("failed", exc_info=sys.exc_info())

        payload = json.loads(build_formatter("json").format(record))
        assert "RuntimeError: boom" in payload["exception"]

    def test_console_line_is_plain_text(self) -> None:
        line = build_formatter("console").format(_record("Collection ready"))
        assert "Collection ready" in line
        assert not line.lstrip().startswith("{")


class TestSetupLogging:
    def test_root_handler_and_levels(self, restore_root_logger) -> None:
        setup_logging(Settings(log_format="json", log_level="debug"))

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_application_logs_render_as_json(self, restore_root_logger, capsys) -> None:
        setup_logging(Settings(log_format="json"))

        logging.getLogger("askly.rag.processor").info("[Processor] Indexed 3 chunks")

        payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert payload["event"] == "[Processor] Indexed 3 chunks"
        assert payload["logger"] == "askly.rag.processor"
