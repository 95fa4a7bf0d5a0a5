"""
permastore utilities.

Logging, retry and security helpers shared by the storage pipeline.
The circuit breaker lives in ``permastore.utils.circuit_breaker`` and is
imported from there directly.
"""

from permastore.utils.logging import (
    LogContext,
    configure_logging,
    disable_logging,
    enable_debug,
    get_logger,
    set_level,
)
from permastore.utils.retry import (
    RetryConfig,
    backoff_delays,
    calculate_delay,
    retry_async,
)
from permastore.utils.security import (
    is_valid_locator,
    safe_json_parse,
    sanitize_for_logging,
)

__all__ = [
    # Structured logging
    "get_logger",
    "configure_logging",
    "set_level",
    "disable_logging",
    "enable_debug",
    "LogContext",
    # Retry
    "RetryConfig",
    "backoff_delays",
    "calculate_delay",
    "retry_async",
    # Security
    "is_valid_locator",
    "safe_json_parse",
    "sanitize_for_logging",
]
