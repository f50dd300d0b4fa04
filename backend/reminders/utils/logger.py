"""Structured JSON Logging with Correlation ID Support

Every line is one JSON object. The correlation id is the request id inside
an API call and the sweep id inside a sweep, so all lines written for one
tick (including its deliveries) can be pulled out together.
"""
import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterator, Optional

from ..config.settings import settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Keys of ``extra={...}`` copied into the JSON line
EXTRA_FIELDS = (
    "rule_id",
    "entity_type",
    "entity_id",
    "channel",
    "recipient_id",
    "notification_id",
    "sweep_id",
    "status",
    "user_id",
)

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "pymongo": logging.WARNING,
    "apscheduler": logging.WARNING,
}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update({
            field: getattr(record, field) for field in EXTRA_FIELDS if hasattr(record, field)
        })

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Enums and datetimes in extras
        return json.dumps(entry, default=str)


def _rotating_handler(path: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: Optional[str] = None, logs_path: Optional[str] = None) -> None:
    """
    Configure the root logger: stdout, ``reminders.log`` and ``error.log``

    Args:
        log_level: Overrides ``settings.log_level``
        logs_path: Overrides ``settings.logs_path``
    """
    logs_path = logs_path or settings.logs_path
    os.makedirs(logs_path, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (log_level or settings.log_level).upper()))
    root_logger.handlers.clear()

    formatter = JsonFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(os.path.join(logs_path, "reminders.log"), formatter))
    root_logger.addHandler(
        _rotating_handler(os.path.join(logs_path, "error.log"), formatter, logging.ERROR)
    )

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name"""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context"""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from context"""
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Use a correlation ID for the enclosed block, restoring the previous one"""
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)
