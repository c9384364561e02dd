from __future__ import annotations

from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any


_request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
_username_ctx_var: ContextVar[str] = ContextVar("username", default="-")

REDACTED = "[REDACTED]"

# Applied in order to every string argument
_STRING_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._-]+"), r"\1" + REDACTED),
    (re.compile(r"\b[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\.[A-Za-z0-9_-]{20,}\b"), "[REDACTED_JWT]"),
    # SASL/JAAS secrets inside connector configs
    (re.compile(r"(?i)(password\s*=\s*)(\"[^\"]*\"|'[^']*'|\S+)"), r"\1" + REDACTED),
]

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s user=%(username)s | %(message)s"


def redact(value: Any, sensitive_keys: frozenset[str] = frozenset()) -> Any:
    """Recursively mask secrets in strings and in dict values under sensitive keys."""
    if isinstance(value, str):
        for pattern, replacement in _STRING_RULES:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive_keys) for item in value)
    return value


class ContextFilter(logging.Filter):
    """Stamps request id and acting username onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx_var.get()
        record.username = _username_ctx_var.get()
        return True


class RedactionFilter(logging.Filter):
    def __init__(self, sensitive_fields: list[str]):
        super().__init__()
        self.sensitive_keys = frozenset(name.strip().lower() for name in sensitive_fields if name.strip())

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.msg, self.sensitive_keys)
        if record.args:
            record.args = redact(record.args, self.sensitive_keys)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "username": getattr(record, "username", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def set_request_id(request_id: str) -> Token[str]:
    return _request_id_ctx_var.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _request_id_ctx_var.reset(token)


def set_log_username(username: str) -> Token[str]:
    return _username_ctx_var.set(username)


def configure_logging(level: str = "INFO", *, log_format: str = "text", redact_fields: list[str] | None = None) -> None:
    """Install context and redaction filters on the root handlers. Does nothing if already configured."""
    root = logging.getLogger()
    if root.handlers:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=TEXT_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    filters = (ContextFilter(), RedactionFilter(redact_fields or []))
    for handler in root.handlers:
        for log_filter in filters:
            handler.addFilter(log_filter)
        if log_format == "json":
            handler.setFormatter(JsonFormatter())
