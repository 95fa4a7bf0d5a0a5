"""
Structured logging for permastore.

Thin layer over the standard library ``logging`` module. Modules obtain a
logger with ``get_logger(__name__)`` and pass structured context through
``extra={...}``; the formatter installed by ``configure_logging`` renders
those fields as ``key=value`` pairs after the message.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional, Union

ROOT_LOGGER_NAME = "permastore"

# Attributes every LogRecord carries; anything else came from ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if not fields:
            return base
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{base} | {rendered}"


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``permastore`` namespace.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Configured logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    stream: Any = None,
    fmt: Optional[str] = None,
) -> logging.Logger:
    """
    Install a structured handler on the ``permastore`` root logger.

    Calling it again replaces the previous handler instead of stacking.

    Args:
        level: Log level (name or number)
        stream: Output stream (defaults to stderr)
        fmt: Optional format string

    Returns:
        The ``permastore`` root logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if getattr(handler, "_permastore_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter(fmt or _DEFAULT_FORMAT))
    handler._permastore_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    set_level(level)
    return root


def set_level(level: Union[int, str]) -> None:
    """Set the level of the ``permastore`` root logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def disable_logging() -> None:
    """Silence all permastore log output."""
    logging.getLogger(ROOT_LOGGER_NAME).disabled = True


def enable_debug() -> None:
    """Shortcut for verbose output while debugging gateway issues."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.disabled = False
    if not root.handlers:
        configure_logging(logging.DEBUG)
    else:
        set_level(logging.DEBUG)


class LogContext(logging.LoggerAdapter):
    """
    Logger adapter that stamps fixed fields on every record.

    Example:
        >>> log = LogContext(get_logger(__name__), upload_id="f1", node="node1")
        >>> log.info("Write started")
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        super().__init__(logger, dict(fields))

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Any:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **fields: Any) -> "LogContext":
        """Return a new context with additional fields."""
        merged = dict(self.extra or {})
        merged.update(fields)
        return LogContext(self.logger, **merged)
