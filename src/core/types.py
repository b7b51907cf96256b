"""
Core types shared across modules.

Kept free of other project imports so the error hierarchy, the retry
helpers and the transports can all depend on it without cycles.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., dropped AMQP link, broker not available)
        AUTH: Authentication failures (e.g., rejected SAS token)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., unknown event hub, invalid configuration)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
