"""
Transport error classification for partition receivers.

Maps exceptions raised by the Event Hub (azure-eventhub) and Kafka (aiokafka)
clients onto the StreamError hierarchy so the poll loop can tell a dropped
link from a rejected credential.
"""

import json

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    PermanentError,
    StreamError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    wrap_exception,
)

# Kafka error classifications based on aiokafka exception types
KAFKA_ERROR_MAPPINGS = {
    "transient": [
        "BrokerNotAvailableError",
        "KafkaConnectionError",
        "NodeNotReadyError",
        "LeaderNotAvailableError",
        "NotLeaderForPartitionError",
        "RequestTimedOutError",
        "KafkaTimeoutError",
        "NetworkException",
        "CorrelationIdError",
    ],
    "auth": [
        "TopicAuthorizationFailedError",
        "GroupAuthorizationFailedError",
        "ClusterAuthorizationFailedError",
        "SaslAuthenticationError",
    ],
    "permanent": [
        "UnknownTopicOrPartitionError",
        "InvalidTopicError",
        "InvalidConfigurationError",
        "UnsupportedVersionError",
        "IllegalStateError",
        "OffsetOutOfRangeError",
    ],
    "throttling": [
        "KafkaThrottlingError",
    ],
}

# Azure EventHub error classifications based on azure-eventhub SDK exceptions
EVENTHUB_ERROR_MAPPINGS = {
    "transient": [
        "EventHubError",
        "ConnectionLostError",
        "ConnectError",
        "OperationTimeoutError",
        "AMQPConnectionError",
        "AMQPLinkError",
    ],
    "auth": [
        "AuthenticationError",
        "ClientAuthenticationError",
    ],
    "permanent": [
        "EventDataError",
        "SchemaError",
    ],
    "throttling": [
        "ServerBusyError",
    ],
}


def classify_error_type(error_type_name: str) -> str | None:
    """
    Classify error by exception type name, checking both Kafka and EventHub mappings.

    Args:
        error_type_name: Name of the exception class

    Returns:
        Error category: "transient", "auth", "permanent", "throttling", or None
    """
    for category, error_types in KAFKA_ERROR_MAPPINGS.items():
        if error_type_name in error_types:
            return category

    for category, error_types in EVENTHUB_ERROR_MAPPINGS.items():
        if error_type_name in error_types:
            return category

    return None


def _classify_by_string_fallback(
    error_str: str, label: str, error: Exception, ctx: dict,
) -> StreamError:
    """Classify error by string markers when type-based classification fails."""
    if any(m in error_str for m in ("unauthorized", "authentication", "authorization")):
        return AuthError(f"{label} auth error: {error}", cause=error, context=ctx)

    if "timeout" in error_str:
        return TimeoutError(f"{label} timeout: {error}", cause=error, context=ctx)

    if any(m in error_str for m in ("connection", "broker", "network", "link detached")):
        return ConnectionError(f"{label} connection error: {error}", cause=error, context=ctx)

    return wrap_exception(error, context=ctx)


class TransportErrorClassifier:
    """
    Centralized error classification for stream transport operations.

    Maps transport exceptions (Kafka protocol via aiokafka, EventHub via
    azure-eventhub) to the StreamError hierarchy.
    """

    @staticmethod
    def classify_receive_error(error: Exception, context: dict | None = None) -> StreamError:
        """
        Classify a partition receive error into appropriate exception type.

        Args:
            error: Original exception from the receiver
            context: Additional context (merged with {"service": "partition_receiver"})

        Returns:
            Classified StreamError subclass
        """
        # Already classified (e.g., PermanentError raised by a transport adapter)
        if isinstance(error, StreamError):
            if context:
                error.context.update(context)
            return error

        error_str = str(error).lower()
        error_type = type(error).__name__
        error_context = {"service": "partition_receiver"}
        if context:
            error_context.update(context)

        label = "Receive"

        if isinstance(error, (json.JSONDecodeError, UnicodeDecodeError)):
            return PermanentError(
                f"Record deserialization failed: {error}",
                cause=error,
                context=error_context,
            )

        category = classify_error_type(error_type)

        if category == "auth":
            return AuthError(f"{label} authentication failed: {error}", cause=error, context=error_context)

        if category == "throttling":
            return ThrottlingError(f"{label} throttled: {error}", cause=error, context=error_context)

        if category == "permanent":
            return PermanentError(f"{label} permanent error: {error}", cause=error, context=error_context)

        if category == "transient":
            if "timeout" in error_str or "Timeout" in error_type:
                return TimeoutError(f"{label} timeout: {error}", cause=error, context=error_context)
            return TransientError(f"{label} transient error: {error}", cause=error, context=error_context)

        return _classify_by_string_fallback(error_str, label, error, error_context)
