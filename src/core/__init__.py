"""
Core library: reusable, transport-agnostic components.

Modules:
    resilience  - Retry with exponential backoff and jitter
    logging     - Structured console/JSON logging with context variables
    errors      - Error classification and exception hierarchy
    utils       - Worker IDs and JSON serialization helpers
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
