"""
Unified exception hierarchy for stream consumers.

Provides typed exceptions with retry classification so the poll loops can
decide between backing off and giving up on a partition.
"""


# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class StreamError(Exception):
    """
    Base exception for all stream consumer errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(StreamError):
    """Credentials rejected by the stream service."""

    category = ErrorCategory.AUTH


# =============================================================================
# Network/Connection Errors (Transient)
# =============================================================================


class TransientError(StreamError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class ThrottlingError(TransientError):
    """Broker or namespace is throttling the client."""

    pass


class TimeoutError(TransientError):
    """Operation timeout error (transient, retryable)."""

    pass


class ConnectionError(TransientError):
    """Connection error (transient, retryable)."""

    pass


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(StreamError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid or incomplete consumer configuration."""

    pass


class PartitionExhaustedError(PermanentError):
    """A partition's receive loop gave up after repeated failures."""

    def __init__(
        self,
        partition_id: str,
        attempts: int,
        cause: Exception | None = None,
    ):
        message = f"Partition {partition_id} stopped after {attempts} failed receive attempts"
        super().__init__(message, cause, {"partition_id": partition_id, "attempts": attempts})
        self.partition_id = partition_id
        self.attempts = attempts


# =============================================================================
# Classification of foreign exceptions
# =============================================================================

# Ordered (category, error_type, markers) rules matched against the lowercased
# exception message; connection and timeout rules also match the type name.
_CLASSIFICATION_RULES: tuple[tuple[ErrorCategory, str | None, tuple[str, ...]], ...] = (
    (
        ErrorCategory.TRANSIENT,
        None,
        (
            "connectionerror",
            "connection refused",
            "connection reset",
            "connection aborted",
            "connection lost",
            "no route to host",
            "network unreachable",
            "name resolution",
            "socket",
            "broken pipe",
        ),
    ),
    (ErrorCategory.TRANSIENT, "timeout", ("timeout",)),
    (
        ErrorCategory.AUTH,
        None,
        ("401", "unauthorized", "authentication", "token expired", "invalid token", "sas token"),
    ),
    (ErrorCategory.TRANSIENT, "throttling", ("429", "throttl", "server busy")),
    (ErrorCategory.TRANSIENT, None, ("502", "503", "504")),
    (ErrorCategory.PERMANENT, None, ("403", "forbidden")),
    (ErrorCategory.PERMANENT, "not_found", ("404", "not found")),
)

_TYPE_NAME_RULES = 2  # only the first two rules also look at the type name


def _match_rule(exc: Exception) -> tuple[ErrorCategory, str | None]:
    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()
    for index, (category, error_type, markers) in enumerate(_CLASSIFICATION_RULES):
        for marker in markers:
            if marker in exc_str or (index < _TYPE_NAME_RULES and marker in exc_type):
                return category, error_type
    return ErrorCategory.UNKNOWN, None


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    if isinstance(exc, StreamError):
        return exc.category
    return _match_rule(exc)[0]


def wrap_exception(
    exc: Exception,
    default_class: type = StreamError,
    context: dict | None = None,
) -> StreamError:
    """Wrap a generic exception in the matching StreamError subclass.

    StreamErrors are returned unchanged, with context merged in.
    """
    if isinstance(exc, StreamError):
        if context:
            exc.context.update(context)
        return exc

    category, error_type = _match_rule(exc)
    context = dict(context or {})
    if error_type:
        context["error_type"] = error_type

    if category == ErrorCategory.AUTH:
        cls = AuthError
    elif category == ErrorCategory.TRANSIENT:
        cls = ThrottlingError if error_type == "throttling" else TransientError
    elif category == ErrorCategory.PERMANENT:
        cls = PermanentError
    else:
        cls = default_class
    return cls(str(exc), cause=exc, context=context)
