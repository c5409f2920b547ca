import io
import json
import logging

import pytest

import logging_config
from logging_config import JsonFormatter


def _record(msg, **extra):
    record = logging.LogRecord("sheet_source", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    line = JsonFormatter().format(_record("Fetched sheet", month="2025-03", rows=42))
    payload = json.loads(line)
    assert payload["msg"] == "Fetched sheet"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "sheet_source"
    assert payload["month"] == "2025-03"
    assert payload["rows"] == 42


def test_json_formatter_keeps_korean_text():
    line = JsonFormatter().format(_record("잔액 없음"))
    assert "잔액 없음" in line


@pytest.fixture
def fresh_root_logger(monkeypatch):
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setattr(logging_config.init_logging, "_configured", False, raising=False)
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_init_logging_writes_to_given_stream(fresh_root_logger):
    buf = io.StringIO()
    logging_config.init_logging("INFO", json_output=False, stream=buf)
    logging.getLogger("offering_analysis").info("report ready")
    assert "INFO offering_analysis: report ready" in buf.getvalue()
