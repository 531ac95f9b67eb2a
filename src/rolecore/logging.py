"""Logging utilities for rolecore.

This module provides:
- Logging configuration from AuthorizerConfig
- Safe preview utilities for identity claims
- Secret redaction
- Structured decision logging with request_id propagation
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import AuthorizerConfig, LogLevel


# Claims travel with bearer material often enough that previews are redacted.
SECRET_PATTERNS = [
    r'(?i)(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'(?i)(?:bearer|basic)\s+([a-zA-Z0-9+/=._-]+)',
    r'(?i)(?:sk-|pk-)[a-zA-Z0-9]{32,}',
    r'[a-f0-9]{32,}',
]

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "request_id", "decision",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a single-line, length-bounded preview of a value for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple, set, frozenset)):
        try:
            s = json.dumps(
                sorted(value) if isinstance(value, (set, frozenset)) else value,
                default=str,
                ensure_ascii=False,
            )
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace common secret patterns (passwords, bearer tokens, keys) in text."""
    if not isinstance(text, str):
        return text

    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE | re.DOTALL)

    return result


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Preview plus optional redaction. Use this for identity claims."""
    preview = safe_preview(value, limit=limit)
    if redact:
        preview = redact_secrets(preview)
    return preview


class DecisionFormatter(logging.Formatter):
    """Formatter that adds request_id / decision and supports JSON output."""

    def __init__(
        self,
        include_request_id: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_request_id = include_request_id
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        decision = getattr(record, "decision", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_request_id and request_id:
            log_data["request_id"] = str(request_id)
        if decision:
            log_data["decision"] = decision

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_log_value(value, redact=self.redact_secrets)

        if self.redact_secrets:
            log_data["message"] = redact_secrets(log_data["message"])

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if "request_id" in log_data:
            parts.append(f"request_id={log_data['request_id']}")
        if decision:
            parts.append(f"decision={decision}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class DecisionLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches request_id to every record.

    Usage:
        logger = get_decision_logger(__name__, request_id=req_id)
        logger.info("posts.edit", decision="deny")
    """

    def __init__(self, logger: logging.Logger, request_id: Optional[str] = None):
        super().__init__(logger, {})
        self.request_id = request_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        request_id = kwargs.pop("request_id", self.request_id)
        decision = kwargs.pop("decision", None)

        extra = kwargs.get("extra", {})
        if request_id:
            extra["request_id"] = request_id
        if decision:
            extra["decision"] = decision
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[AuthorizerConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure the root logger for a service embedding rolecore.

    Args:
        config: AuthorizerConfig instance (if None, loads from environment)
        json_format: Force JSON (True) or plain text (False); defaults to ``config.log_json``
        redact_secrets: Whether to redact secrets (default: True)
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)
    if json_format is None:
        json_format = config.log_json

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        DecisionFormatter(
            include_request_id=True,
            json_format=json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)


def get_decision_logger(name: str, request_id: Optional[str] = None) -> DecisionLoggerAdapter:
    """Get a logger adapter that tags records with ``request_id``.

    Example:
        logger = get_decision_logger(__name__, request_id="req-42")
        logger.info("authorized", decision="allow")
    """
    return DecisionLoggerAdapter(logging.getLogger(name), request_id=request_id)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "DecisionFormatter",
    "DecisionLoggerAdapter",
    "setup_logging",
    "get_decision_logger",
]
