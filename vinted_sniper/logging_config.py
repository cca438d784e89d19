"""Structured logging configuration."""

import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

RECENT_LOG_CAPACITY = 50


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter with timestamp, level, logger and source fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.filename}:{record.lineno}"

        if record.funcName:
            log_record["function"] = record.funcName


class RecentLogHandler(logging.Handler):
    """Keeps the most recent log entries in memory for the control surface."""

    def __init__(self, capacity: int = RECENT_LOG_CAPACITY, level=logging.INFO):
        super().__init__(level=level)
        self._entries: deque[dict] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.appendleft(entry)

    def recent(self) -> list[dict]:
        """Most recent entries first."""
        with self._entries_lock:
            return list(self._entries)


def setup_logging(
    log_level: str = "INFO",
    base_dir: str | Path | None = None,
    to_files: bool = True,
) -> RecentLogHandler:
    """Configure logging for the application.

    Args:
        log_level: Root log level name
        base_dir: Optional base directory to place the logs/ folder in.
                  If omitted, uses the current working directory.
        to_files: Write JSON logs under logs/ in addition to the console

    Returns:
        The in-memory handler holding recent log entries
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    # Console handler (human-readable)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    if to_files:
        logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        json_formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

        json_handler = logging.FileHandler(logs_dir / "app.log", encoding="utf-8")
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(json_formatter)
        root_logger.addHandler(json_handler)

        error_handler = logging.FileHandler(logs_dir / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(json_formatter)
        root_logger.addHandler(error_handler)

    recent_handler = RecentLogHandler()
    root_logger.addHandler(recent_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return recent_handler
