"""
Tests for transport error classification (Kafka and EventHub).
"""

import json

import pytest

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    PermanentError,
    StreamError,
    ThrottlingError,
    TimeoutError,
    TransientError,
)
from core.errors.transport_classifier import (
    EVENTHUB_ERROR_MAPPINGS,
    KAFKA_ERROR_MAPPINGS,
    TransportErrorClassifier,
    classify_error_type,
)


def _named(name: str, message: str = "boom") -> Exception:
    """Build an exception whose class name matches an SDK exception."""
    return type(name, (Exception,), {})(message)


# ---------------------------------------------------------------------------
# classify_error_type (combined Kafka + EventHub)
# ---------------------------------------------------------------------------


class TestClassifyErrorType:
    @pytest.mark.parametrize("category", ["transient", "auth", "permanent", "throttling"])
    def test_kafka_mappings(self, category):
        for name in KAFKA_ERROR_MAPPINGS[category]:
            assert classify_error_type(name) == category

    @pytest.mark.parametrize("category", ["transient", "auth", "permanent", "throttling"])
    def test_eventhub_mappings(self, category):
        for name in EVENTHUB_ERROR_MAPPINGS[category]:
            assert classify_error_type(name) == category

    def test_unknown_error_returns_none(self):
        assert classify_error_type("SomeRandomError") is None


# ---------------------------------------------------------------------------
# TransportErrorClassifier.classify_receive_error
# ---------------------------------------------------------------------------


class TestClassifyReceiveError:

    def test_stream_error_returned_with_context(self):
        error = PermanentError("gone")
        result = TransportErrorClassifier.classify_receive_error(error, {"partition_id": "1"})
        assert result is error
        assert error.context["partition_id"] == "1"

    def test_decode_error_is_permanent(self):
        error = json.JSONDecodeError("Expecting value", "", 0)
        result = TransportErrorClassifier.classify_receive_error(error)
        assert isinstance(result, PermanentError)

    def test_eventhub_auth(self):
        result = TransportErrorClassifier.classify_receive_error(_named("AuthenticationError"))
        assert isinstance(result, AuthError)

    def test_eventhub_server_busy(self):
        result = TransportErrorClassifier.classify_receive_error(_named("ServerBusyError"))
        assert isinstance(result, ThrottlingError)

    def test_eventhub_connection_lost(self):
        result = TransportErrorClassifier.classify_receive_error(_named("ConnectionLostError"))
        assert isinstance(result, TransientError)
        assert result.context["service"] == "partition_receiver"

    def test_kafka_request_timeout(self):
        result = TransportErrorClassifier.classify_receive_error(_named("RequestTimedOutError", "request timeout"))
        assert isinstance(result, TimeoutError)

    def test_kafka_unknown_topic(self):
        result = TransportErrorClassifier.classify_receive_error(_named("UnknownTopicOrPartitionError"))
        assert isinstance(result, PermanentError)

    def test_string_fallback_connection(self):
        result = TransportErrorClassifier.classify_receive_error(RuntimeError("broker went away"))
        assert isinstance(result, ConnectionError)

    def test_string_fallback_auth(self):
        result = TransportErrorClassifier.classify_receive_error(RuntimeError("Unauthorized access"))
        assert isinstance(result, AuthError)

    def test_unclassified_wrapped(self):
        result = TransportErrorClassifier.classify_receive_error(RuntimeError("???"), {"partition_id": "0"})
        assert type(result) is StreamError
        assert result.is_retryable
        assert result.context["partition_id"] == "0"
