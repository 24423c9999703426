"""Logging utilities for contextroles.

This module provides:
- Logging configuration from RolesConfig
- Safe preview utilities for values attached to log records
- Structured (JSON or plain) formatting with authorization context
- A logger adapter that picks up user/actor/request ids from the request context
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .config import LogLevel, RolesConfig

CONTEXT_FIELDS = ("user_id", "actor_id", "request_id", "scope")

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a single-line, length-bounded preview of a value for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A truncated string representation ("" for None)
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


class RolesFormatter(logging.Formatter):
    """Formatter that adds user, actor, request and scope fields.

    JSON output carries every extra attribute of the record (as a safe
    preview). Plain output appends the authorization context as ``key=value``
    pairs.
    """

    def __init__(self, json_format: bool = True, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None)
        }
        log_data.update({key: str(value) for key, value in context.items()})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in CONTEXT_FIELDS or key in log_data:
                continue
            log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        parts.extend(f"{key}={log_data[key]}" for key in CONTEXT_FIELDS if key in log_data)
        parts.append(f": {log_data['message']}")
        line = " ".join(parts)
        if "exception" in log_data:
            line = f"{line}\n{log_data['exception']}"
        return line


class RolesLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches authorization context to every record.

    Explicit keyword arguments win over values bound at construction, which
    win over the current request context.

    Usage:
        logger = get_roles_logger(__name__)
        logger.info("Role assigned", scope="organization:org_1")
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {})
        self.context = {key: value for key, value in context.items() if key in CONTEXT_FIELDS}

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        from .context import get_actor_id, get_request_id, get_user_id

        ambient = {
            "user_id": get_user_id(),
            "actor_id": get_actor_id(),
            "request_id": get_request_id(),
        }

        extra = dict(kwargs.get("extra") or {})
        for key in CONTEXT_FIELDS:
            value = kwargs.pop(key, None) or self.context.get(key) or ambient.get(key)
            if value:
                extra[key] = value
        kwargs["extra"] = extra

        return msg, kwargs


_LEVEL_MAP = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


def setup_logging(config: Optional[RolesConfig] = None) -> None:
    """Configure the root logger from RolesConfig.

    Replaces existing root handlers with a single console handler using
    :class:`RolesFormatter`.

    Args:
        config: RolesConfig instance (if None, loads from environment)
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    log_level = _LEVEL_MAP.get(config.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(RolesFormatter(json_format=config.log_json))
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_roles_logger(name: str, **context: Any) -> RolesLoggerAdapter:
    """Get a logger adapter carrying authorization context.

    Args:
        name: Logger name (typically __name__)
        **context: Any of user_id, actor_id, request_id, scope

    Example:
        logger = get_roles_logger(__name__, scope="project:proj_1")
        logger.warning("Permission denied")
    """
    return RolesLoggerAdapter(logging.getLogger(name), **context)


__all__ = [
    "CONTEXT_FIELDS",
    "RolesFormatter",
    "RolesLoggerAdapter",
    "get_roles_logger",
    "safe_preview",
    "setup_logging",
]
