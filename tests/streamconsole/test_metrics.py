"""Tests for consumer Prometheus metrics."""

import errno
from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY

from streamconsole import metrics


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCounters:

    def test_record_delivered(self):
        before = _sample("stream_console_records_delivered_total", partition="m1")
        metrics.record_delivered("m1", 3)
        assert _sample("stream_console_records_delivered_total", partition="m1") == before + 3

    def test_record_delivered_ignores_empty_batches(self):
        before = _sample("stream_console_records_delivered_total", partition="m2")
        metrics.record_delivered("m2", 0)
        assert _sample("stream_console_records_delivered_total", partition="m2") == before

    def test_receive_error_labels(self):
        metrics.record_receive_error("m3", "transient")
        assert _sample(
            "stream_console_receive_errors_total", partition="m3", error_category="transient"
        ) >= 1

    def test_receive_retry(self):
        before = _sample("stream_console_receive_retries_total", partition="m4")
        metrics.record_receive_retry("m4")
        assert _sample("stream_console_receive_retries_total", partition="m4") == before + 1


class TestStartMetricsServer:

    def test_uses_preferred_port(self):
        with patch("streamconsole.metrics.start_http_server") as mock_start:
            assert metrics.start_metrics_server(9100) == 9100
        mock_start.assert_called_once_with(9100, registry=REGISTRY)

    def test_falls_back_when_port_in_use(self):
        in_use = OSError(errno.EADDRINUSE, "Address already in use")
        with patch("streamconsole.metrics.start_http_server", side_effect=[in_use, None]) as mock_start:
            port = metrics.start_metrics_server(9100)

        assert port != 9100
        assert mock_start.call_count == 2

    def test_other_errors_propagate(self):
        denied = OSError(errno.EACCES, "Permission denied")
        with patch("streamconsole.metrics.start_http_server", side_effect=denied):
            with pytest.raises(OSError):
                metrics.start_metrics_server(80)
