"""
Retry policy for stream operations.

RetryConfig decides whether a failure is worth another attempt and how long
to back off first:
- Transient, auth and unclassified errors are retried with exponential
  backoff and equal jitter, up to max_attempts.
- Permanent errors are never retried.

The partition pollers drive RetryConfig directly from their receive loop.
with_retry_async wraps one-shot calls such as opening a receiver. Both can
be handed a stop event so a shutdown cuts a backoff short.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps

from core.errors.exceptions import StreamError, classify_exception, wrap_exception
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

_RETRYABLE_CATEGORIES = (
    ErrorCategory.TRANSIENT,
    ErrorCategory.AUTH,
    ErrorCategory.UNKNOWN,
)


def error_category_of(error: Exception) -> ErrorCategory:
    if isinstance(error, StreamError):
        return error.category
    return classify_exception(error)


def log_retry_attempt(
    operation: str,
    attempt: int,
    config: "RetryConfig",
    delay: float,
    error: Exception,
) -> None:
    """Emit the retry-attempt warning with backoff details."""
    logger.warning(
        "Retryable error for %s, will retry in %.2fs",
        operation,
        delay,
        extra={
            "operation": operation,
            "attempt": attempt + 1,
            "max_attempts": config.max_attempts,
            "error_category": error_category_of(error).value,
            "delay_seconds": round(delay, 2),
            "error_message": str(error)[:200],
        },
    )


def safe_invoke_on_retry(
    on_retry: Callable[[Exception, int, float], None],
    wrapped: Exception,
    attempt: int,
    delay: float,
    func_name: str,
) -> None:
    """Call the on_retry callback, swallowing and logging any errors."""
    try:
        on_retry(wrapped, attempt, delay)
    except Exception as cb_err:
        logger.warning(
            "Error in on_retry callback for %s: %s",
            func_name,
            str(cb_err)[:100],
            extra={
                "operation": func_name,
                "callback_error": str(cb_err)[:100],
            },
        )


async def backoff(delay: float, stop_event: asyncio.Event | None = None) -> bool:
    """Sleep for delay seconds, waking early if stop_event is set.

    Returns:
        True if the stop event was set before or during the wait
    """
    if stop_event is None:
        await asyncio.sleep(delay)
        return False
    if stop_event.is_set():
        return True
    if delay <= 0:
        await asyncio.sleep(0)
        return stop_event.is_set()
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


@dataclass
class RetryConfig:
    """Bounded exponential backoff with equal jitter."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    def __post_init__(self):
        # Values may arrive as strings from YAML or env expansion
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must not be negative")

    def get_delay(self, attempt: int) -> float:
        """
        Delay before the retry that follows a failed attempt.

        Half of the exponential delay is fixed and half is random, so
        partitions failing together do not retry in lockstep.

        Args:
            attempt: 0-indexed attempt that just failed
        """
        exponential = self.base_delay * (self.exponential_base**attempt)
        half = exponential / 2
        return min(half + random.uniform(0, half), self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Args:
            error: The exception that occurred
            attempt: 0-indexed attempt that just failed

        Returns:
            True if another attempt is allowed
        """
        if attempt >= self.max_attempts - 1:
            return False
        if isinstance(error, StreamError):
            return error.is_retryable
        return classify_exception(error) in _RETRYABLE_CATEGORIES


RECEIVE_RETRY = RetryConfig(max_attempts=5, base_delay=0.5, max_delay=30.0)


def with_retry_async(
    config: RetryConfig,
    on_retry: Callable[[Exception, int, float], None] | None = None,
    wrap_errors: bool = True,
    stop_event: asyncio.Event | None = None,
):
    """
    Decorator for retrying async functions with backoff.

    Args:
        config: Retry policy
        on_retry: Callback before each retry (error, attempt, delay)
        wrap_errors: If True, unknown exceptions are raised as StreamError
        stop_event: When set, no further attempt is made and the last
            error is raised straight away

    Usage:
        @with_retry_async(config=RetryConfig(max_attempts=3), stop_event=stop)
        async def open_receiver():
            ...
    """

    def decorator(func: Callable):
        name = func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    wrapped = e if not wrap_errors or isinstance(e, StreamError) else wrap_exception(e)

                    if not config.should_retry(wrapped, attempt):
                        level = logging.ERROR
                        reason = "Max retries exhausted"
                        if error_category_of(wrapped) not in _RETRYABLE_CATEGORIES:
                            level = logging.WARNING
                            reason = "Permanent error"
                        logger.log(
                            level,
                            "%s for %s: %s",
                            reason,
                            name,
                            str(e)[:200],
                            extra={
                                "operation": name,
                                "attempt": attempt + 1,
                                "max_attempts": config.max_attempts,
                                "error_type": type(wrapped).__name__,
                                "error_category": error_category_of(wrapped).value,
                                "error_message": str(e)[:200],
                            },
                        )
                        if wrapped is e:
                            raise
                        raise wrapped from e

                    delay = config.get_delay(attempt)
                    log_retry_attempt(name, attempt, config, delay, wrapped)
                    if on_retry:
                        safe_invoke_on_retry(on_retry, wrapped, attempt, delay, name)

                    if await backoff(delay, stop_event):
                        logger.info(
                            "Stop requested, abandoning retries for %s",
                            name,
                            extra={"operation": name, "attempt": attempt + 1},
                        )
                        if wrapped is e:
                            raise
                        raise wrapped from e
                    attempt += 1
                    continue

                if attempt > 0:
                    logger.info(
                        "Retry succeeded for %s after %d attempts",
                        name,
                        attempt + 1,
                        extra={"operation": name, "attempt": attempt + 1},
                    )
                return result

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "RECEIVE_RETRY",
    "backoff",
    "error_category_of",
    "log_retry_attempt",
    "safe_invoke_on_retry",
    "with_retry_async",
]
