"""Logging utilities for the scoped access service.

This module provides:
- Logging configuration from ScopedAccessConfig
- A formatter emitting JSON or plain text with the package being processed
- A logger adapter that tags records with that package
- Safe, length-bounded previews of values
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .config import LogLevel, ScopedAccessConfig

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "package",
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
    elif isinstance(value, (dict, list)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"
    return s


class ScopedAccessFormatter(logging.Formatter):
    """Formatter that includes the package and any ``extra`` fields.

    Args:
        json_format: Whether to output JSON (True) or plain text (False).
    """

    def __init__(self, json_format: bool = True, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        package = getattr(record, "package", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if package:
            log_data["package"] = package

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            log_data["level"],
            log_data["logger"],
        ]
        if package:
            parts.append(f"package={package}")
        parts.append(f": {log_data['message']}")
        text = " ".join(parts)
        if "exception" in log_data:
            text = f"{text}\n{log_data['exception']}"
        return text


class PackageLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds ``package`` to every record.

    Usage:
        logger = get_package_logger(__name__, "com.example.gallery")
        logger.info("Merged %d rows", 3)
    """

    def __init__(self, logger: logging.Logger, package: Optional[str] = None):
        super().__init__(logger, {})
        self.package = package

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        package = kwargs.pop("package", self.package)
        extra = kwargs.get("extra", {})
        if package:
            extra["package"] = package
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    config: Optional[ScopedAccessConfig] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure the root logger for the service.

    Args:
        config: Service config (if None, loads from environment)
        json_format: Override ``config.log_json``
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
    log_level = level_map.get(LogLevel(config.log_level), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        ScopedAccessFormatter(json_format=config.log_json if json_format is None else json_format)
    )
    root_logger.addHandler(console_handler)


def get_package_logger(name: str, package: Optional[str] = None) -> PackageLoggerAdapter:
    """Get a logger adapter bound to ``package``.

    Args:
        name: Logger name (typically __name__)
        package: Package whose permissions are being processed
    """
    return PackageLoggerAdapter(logging.getLogger(name), package=package)


__all__ = [
    "PackageLoggerAdapter",
    "ScopedAccessFormatter",
    "get_package_logger",
    "safe_preview",
    "setup_logging",
]
