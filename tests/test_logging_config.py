"""Tests for logging setup."""

import json
import logging

from pythonjsonlogger.json import JsonFormatter

from vinted_sniper.logging_config import CustomJsonFormatter, RecentLogHandler, setup_logging


def test_setup_logging_writes_json_files(tmp_path):
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level
    try:
        buffer = setup_logging("INFO", base_dir=tmp_path)
        assert isinstance(buffer, RecentLogHandler)

        logger = logging.getLogger("vinted_sniper.tests.logging")
        logger.info("cycle finished")
        logger.error("search failed")
        for handler in root_logger.handlers:
            handler.flush()

        app_lines = (tmp_path / "logs" / "app.log").read_text().splitlines()
        error_lines = (tmp_path / "logs" / "error.log").read_text().splitlines()
        assert len(app_lines) == 2
        assert len(error_lines) == 1

        record = json.loads(error_lines[0])
        assert record["message"] == "search failed"
        assert record["level"] == "ERROR"
        assert record["logger"] == "vinted_sniper.tests.logging"

        assert [e["message"] for e in buffer.recent()] == ["search failed", "cycle finished"]
    finally:
        for handler in root_logger.handlers:
            handler.close()
        root_logger.handlers[:] = saved_handlers
        root_logger.setLevel(saved_level)


def test_recent_buffer_is_bounded():
    handler = RecentLogHandler(capacity=3)
    logger = logging.getLogger("vinted_sniper.tests.buffer")
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        for i in range(10):
            logger.info(f"line {i}")
    finally:
        logger.removeHandler(handler)

    assert [e["message"] for e in handler.recent()] == ["line 9", "line 8", "line 7"]


def test_console_only(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    try:
        setup_logging("DEBUG", to_files=False)
        assert not (tmp_path / "logs").exists()
    finally:
        root_logger.handlers[:] = saved_handlers


def test_formatter_adds_fields():
    formatter = CustomJsonFormatter("%(message)s")
    assert isinstance(formatter, JsonFormatter)

    record = logging.LogRecord(
        "vinted_sniper.tests.format", logging.WARNING, "poller.py", 12, "backing off", None, None
    )
    data = json.loads(formatter.format(record))
    assert data["message"] == "backing off"
    assert data["level"] == "WARNING"
    assert data["source"] == "poller.py:12"
