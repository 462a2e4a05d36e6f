"""
Logging configuration for the CineBook booking engine.

Every handler carries two filters: one stamps the active booking session id
on the record, the other masks guest contact details.
"""

import json
import logging
import logging.config
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import get_settings

# Booking session currently being worked on, if any
booking_session_id_var: ContextVar[Optional[str]] = ContextVar(
    "booking_session_id", default=None
)

RECORD_FILTERS = ["booking_session", "sensitive_data"]

# Third-party loggers routed through the same handlers, with their levels
LIBRARY_LEVELS = {
    "sqlalchemy.engine": "WARNING",
    "redis": "WARNING",
    "celery": "INFO",
}


def _rotating_file(filename: str, level: str, formatter: str, backup_count: int) -> Dict[str, Any]:
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": filename,
        "maxBytes": 10 * 1024 * 1024,  # 10MB
        "backupCount": backup_count,
        "filters": list(RECORD_FILTERS),
    }


def build_logging_config(
    log_level: str,
    log_file: Optional[str],
    enable_json_logging: bool,
    environment: str,
) -> Dict[str, Any]:
    """Assemble the dictConfig mapping for the given settings."""
    formatter = "json" if enable_json_logging else "detailed"

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter,
            "stream": sys.stdout,
            "filters": list(RECORD_FILTERS),
        }
    }
    if log_file:
        handlers["file"] = _rotating_file(log_file, log_level, formatter, backup_count=5)

    shared = list(handlers)
    engine_handlers = list(shared)
    if environment == "production":
        error_file = log_file.replace(".log", "_errors.log") if log_file else "logs/errors.log"
        handlers["error_file"] = _rotating_file(error_file, "ERROR", formatter, backup_count=10)
        engine_handlers.append("error_file")

    loggers = {
        "cinebook": {"level": log_level, "handlers": engine_handlers, "propagate": False},
    }
    for name, level in LIBRARY_LEVELS.items():
        loggers[name] = {"level": level, "handlers": list(shared), "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d "
                    "[%(booking_session_id)s] %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "json": {"()": "cinebook.utils.logging_config.JSONFormatter"},
        },
        "filters": {
            "booking_session": {"()": "cinebook.utils.logging_config.BookingSessionFilter"},
            "sensitive_data": {"()": "cinebook.utils.logging_config.SensitiveDataFilter"},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": list(shared)},
    }


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logging: bool = False,
    environment: Optional[str] = None,
) -> None:
    """
    Set up logging for the engine and the libraries it drives.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        enable_json_logging: Enable JSON formatted logs
        environment: Deployment environment; defaults to the configured one.
            Production adds an error-only rotating file.
    """
    environment = environment or get_settings().environment
    logging.config.dictConfig(
        build_logging_config(log_level, log_file, enable_json_logging, environment)
    )

class BookingSessionFilter(logging.Filter):
    """Attach the current booking session id to log records."""

    def filter(self, record):
        if not getattr(record, "booking_session_id", None):
            record.booking_session_id = booking_session_id_var.get() or "no-session"
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask guest contact details and secrets before records leave the process."""

    SENSITIVE_KEYS = {
        "email", "phone", "guest_email", "guest_phone", "customer_email",
        "customer_phone", "card_number", "password", "token", "secret", "api_key",
    }

    TOKEN_PATTERN = re.compile(r"\b[A-Za-z0-9]{32,}\b")
    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
    # At least 7 digits with optional separators; dates and UUIDs do not match
    PHONE_PATTERN = re.compile(r"(?<![\w-])(?!\d{4}-\d{2}-\d{2}\b)\+?\d[\d ()-]{5,}\d(?![\w-])")

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize_string(record.msg)

        for key, value in list(record.__dict__.items()):
            if key in self.SENSITIVE_KEYS and value is not None:
                setattr(record, key, "***MASKED***")
            elif isinstance(value, dict):
                setattr(record, key, self._sanitize_data(value))

        return True

    def _sanitize_string(self, text: str) -> str:
        text = self.TOKEN_PATTERN.sub("***MASKED***", text)
        text = self.EMAIL_PATTERN.sub("***EMAIL***", text)
        return self.PHONE_PATTERN.sub("***PHONE***", text)

    def _sanitize_data(self, data):
        """Recursively sanitize sensitive data."""
        if isinstance(data, dict):
            return {
                key: "***MASKED***" if key.lower() in self.SENSITIVE_KEYS
                else self._sanitize_data(value)
                for key, value in data.items()
            }
        elif isinstance(data, str):
            return self._sanitize_string(data)
        elif isinstance(data, (list, tuple)):
            return type(data)(self._sanitize_data(item) for item in data)
        return data


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = {
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "lineno", "funcName", "created",
        "msecs", "relativeCreated", "thread", "threadName", "taskName",
        "processName", "process", "exc_info", "exc_text", "stack_info",
        "booking_session_id",
    }

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "booking_session_id", None):
            log_entry["booking_session_id"] = record.booking_session_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in self.RESERVED
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


performance_logger = logging.getLogger("cinebook.performance")
business_logger = logging.getLogger("cinebook.business")


def log_performance(operation_name: str, duration: float, **kwargs):
    """Log how long an engine operation took."""
    performance_logger.info(
        f"{operation_name} completed in {duration:.4f}s",
        extra={"operation": operation_name, "duration": duration, "performance_metric": True, **kwargs}
    )


def log_business_event(event_type: str, details: Dict[str, Any], user_id: Optional[str] = None):
    """Log booking lifecycle events (reservations, payments, tickets)."""
    business_logger.info(
        f"Business event: {event_type}",
        extra={"event_type": event_type, "business_event": True, "user_id": user_id, **details}
    )
