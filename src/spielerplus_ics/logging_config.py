"""Structured JSON logging with request ids and secret redaction."""

from __future__ import annotations

import contextvars
import json
import logging
import re
import secrets
from typing import Any

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="system")

SENSITIVE_KEYS = ("password", "token", "cookie", "authorization", "auth", "credentials")

_PATTERNS = [
    (re.compile(r"([?&]t=)[^&\s]+"), r"\1***TOKEN***"),
    (re.compile(r"([?&]u=)[^&\s]+"), r"\1***USER***"),
    (re.compile(r"(password['\"=:]\s*)[^'\",\s}]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(cookie['\"=:]\s*)[^'\",\s}]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(_identity=)[^;\s]+"), r"\1***"),
    (re.compile(r"(SID=)[^;\s]+"), r"\1***"),
    (re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+"), r"\1***"),
]

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
}


def new_request_id() -> str:
    return secrets.token_hex(8)


def set_request_id(request_id: str) -> contextvars.Token:
    return _request_id.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def get_request_id() -> str:
    return _request_id.get()


def mask_sensitive(data: Any) -> Any:
    """Mask tokens, passwords and cookies in strings and dicts."""
    if isinstance(data, str):
        for pattern, replacement in _PATTERNS:
            data = pattern.sub(replacement, data)
        return data
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if any(s in str(key).lower() for s in SENSITIVE_KEYS):
                masked[key] = "***"
            else:
                masked[key] = mask_sensitive(value)
        return masked
    return data


class RequestContextFilter(logging.Filter):
    """Attaches the current request id to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON with secrets masked."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", get_request_id()),
            "message": mask_sensitive(record.getMessage()),
        }

        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if context:
            log_data["context"] = mask_sensitive(context)

        if record.exc_info:
            log_data["exception"] = mask_sensitive(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure the root logger with a single JSON stream handler.

    :param log_level: Logging level name (DEBUG, INFO, WARNING, ERROR).
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
