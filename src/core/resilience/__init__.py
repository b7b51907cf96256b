"""
Resilience patterns module.

Components:
    - RetryConfig: bounded exponential backoff with jitter
    - backoff(): stop-aware sleep shared by the pollers and the decorator
    - @with_retry_async decorator for one-shot operations
    - RECEIVE_RETRY: default policy for partition receives
"""

from .retry import (
    RECEIVE_RETRY,
    RetryConfig,
    backoff,
    error_category_of,
    log_retry_attempt,
    safe_invoke_on_retry,
    with_retry_async,
)

__all__ = [
    "RetryConfig",
    "RECEIVE_RETRY",
    "backoff",
    "error_category_of",
    "log_retry_attempt",
    "safe_invoke_on_retry",
    "with_retry_async",
]
