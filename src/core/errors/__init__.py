"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- StreamError hierarchy for typed exceptions
- classify_exception / wrap_exception for foreign exceptions
- Transport error classifier for Event Hub and Kafka receivers
"""

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    ConnectionError,
    ErrorCategory,
    PartitionExhaustedError,
    PermanentError,
    StreamError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    classify_exception,
    wrap_exception,
)
from core.errors.transport_classifier import TransportErrorClassifier

__all__ = [
    "ErrorCategory",
    "StreamError",
    "AuthError",
    "TransientError",
    "ThrottlingError",
    "TimeoutError",
    "ConnectionError",
    "PermanentError",
    "ConfigurationError",
    "PartitionExhaustedError",
    "classify_exception",
    "wrap_exception",
    "TransportErrorClassifier",
]
