"""
Retry utilities for permastore.

Exponential backoff with jitter for the read-path gateway calls and for
verification polling. Funding and write calls are never wrapped in these
helpers: they move value and must run at most once.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    Iterator,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from permastore.utils.logging import get_logger

T = TypeVar("T")

_logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Example:
        ```python
        config = RetryConfig(
            max_attempts=5,
            base_delay_ms=1000,
            jitter=True,
            retryable_errors=(RetrievalFailedError, httpx.TransportError),
        )
        ```
    """

    max_attempts: int = 3
    """Maximum number of attempts (first call included)."""

    base_delay_ms: int = 1000
    """Base delay in milliseconds for exponential backoff."""

    max_delay_ms: int = 30000
    """Maximum delay in milliseconds (cap for exponential growth)."""

    jitter: bool = True
    """Whether to add random jitter to delays."""

    exponential_base: float = 2.0
    """Base for exponential backoff calculation."""

    retryable_errors: Tuple[Type[BaseException], ...] = field(
        default_factory=lambda: (Exception,)
    )
    """Tuple of exception types that should trigger a retry."""


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay with exponential backoff and optional jitter.

    Args:
        attempt: Zero-based attempt number (0 = first retry)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = config.base_delay_ms * (config.exponential_base ** attempt)
    delay_ms = min(delay_ms, config.max_delay_ms)

    if config.jitter:
        # Full jitter
        delay_ms = random.uniform(0, delay_ms)

    return delay_ms / 1000


def backoff_delays(config: RetryConfig) -> Iterator[float]:
    """
    Yield the sleep before each retry, in seconds.

    Produces ``max_attempts - 1`` values, so a loop that makes one attempt,
    then sleeps for each yielded delay and tries again, performs exactly
    ``max_attempts`` attempts.
    """
    for attempt in range(max(config.max_attempts - 1, 0)):
        yield calculate_delay(attempt, config)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *,
    operation: Optional[str] = None,
) -> T:
    """
    Execute async function with retry logic.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration (uses defaults if None)
        operation: Name used in retry log lines

    Returns:
        Result of the function

    Raises:
        Last exception if all retries fail

    Example:
        ```python
        data = await retry_async(
            lambda: gateway.read(locator),
            RetryConfig(max_attempts=5, retryable_errors=(httpx.TransportError,)),
            operation="read",
        )
        ```
    """
    config = config or RetryConfig()
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except config.retryable_errors as e:
            last_error = e

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                _logger.debug(
                    "Retrying after failure",
                    extra={
                        "operation": operation or getattr(fn, "__name__", "call"),
                        "attempt": attempt + 1,
                        "delay_s": round(delay, 3),
                        "error": str(e),
                    },
                )
                await asyncio.sleep(delay)

    if last_error is not None:
        raise last_error

    raise RuntimeError("Retry exhausted without error")
