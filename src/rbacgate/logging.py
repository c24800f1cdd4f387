"""Logging utilities for rbacgate.

This module provides:
- Logging configuration from RbacConfig
- Safe preview utilities for identities and permission specs
- Secret redaction
- Request-scoped logger adapter carrying request_id and identity
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import LogLevel, RbacConfig


# Identities often arrive as raw bearer tokens, session cookies or JWTs
# copied from request headers or gRPC metadata.
SECRET_PATTERNS = [
    # password=..., api_key: ..., x-api-key=...
    r'(?:password|passwd|secret|token|api[_-]?key|session[_-]?id)\s*[:=]\s*["\']?[^"\'\s,;]+',
    # Authorization header values
    r'(?:bearer|basic)\s+[a-z0-9+/=._~-]+',
    # JWT (header.payload[.signature])
    r'eyJ[a-z0-9_-]+\.[a-z0-9_-]+(?:\.[a-z0-9_-]*)?',
]

_SECRET_RE = re.compile("|".join(f"(?:{pattern})" for pattern in SECRET_PATTERNS), re.IGNORECASE)

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "request_id", "identity",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Render ``value`` on one line, at most ``limit`` characters long.

    Permission lists and role-name collections are rendered as JSON lists
    (sets sorted, so the output is stable); everything else, including
    ``PermissionQuery``, through ``str()``.
    """
    if value is None:
        return ""

    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)

    if isinstance(value, str):
        text = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(value)
    else:
        text = str(value)

    text = " ".join(text.split())
    if len(text) > limit:
        return text[: limit - 1] + "…"
    return text


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace credentials (key/value secrets, auth header values, JWTs) in ``text``."""
    if not isinstance(text, str):
        return text
    return _SECRET_RE.sub(replacement, text)


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    preview = safe_preview(value, limit=limit)
    return redact_secrets(preview) if redact else preview


class RbacFormatter(logging.Formatter):
    """Formatter adding request context and optional JSON output.

    Extra attributes set on the record (``request_id``, ``identity`` and any
    ``extra=`` keys) are rendered through ``safe_log_value``.
    """

    def __init__(
        self,
        include_request: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_request = include_request
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        identity = getattr(record, "identity", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_request:
            if request_id:
                log_data["request_id"] = str(request_id)
            if identity is not None:
                log_data["identity"] = safe_log_value(identity, limit=80, redact=self.redact_secrets)

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
        if request_id:
            parts.append(f"request_id={log_data['request_id']}")
        parts.append(f": {log_data['message']}")
        return " ".join(parts)


class RbacLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds request_id and identity to every record.

    Usage:
        logger = get_rbac_logger(__name__, request_id="req-1", identity="bart")
        logger.info("restricted")
    """

    def __init__(
        self,
        logger: logging.Logger,
        request_id: Optional[str] = None,
        identity: Any = None,
    ):
        super().__init__(logger, {})
        self.request_id = request_id
        self.identity = identity

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        request_id = kwargs.pop("request_id", self.request_id)
        identity = kwargs.pop("identity", self.identity)

        extra = kwargs.get("extra", {})
        if request_id:
            extra["request_id"] = request_id
        if identity is not None:
            extra["identity"] = identity
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[RbacConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure the root logger from RbacConfig.

    Args:
        config: RbacConfig instance (if None, loads from environment)
        json_format: Override ``config.log_json``
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

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        RbacFormatter(
            include_request=True,
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)


def get_rbac_logger(
    name: str,
    request_id: Optional[str] = None,
    identity: Any = None,
) -> RbacLoggerAdapter:
    """Get a logger adapter bound to one request.

    Args:
        name: Logger name (typically __name__)
        request_id: Optional request id to include in all logs
        identity: Optional requester identity to include in all logs
    """
    return RbacLoggerAdapter(logging.getLogger(name), request_id=request_id, identity=identity)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "RbacFormatter",
    "RbacLoggerAdapter",
    "setup_logging",
    "get_rbac_logger",
]
