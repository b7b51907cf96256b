"""
Prometheus metrics for the console consumer.

- Records delivered per partition
- Receive errors per partition and error category
- Receive retries per partition
- Number of partitions currently polling
"""

import errno
import logging
import socket

from prometheus_client import REGISTRY, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

records_delivered_total = Counter(
    "stream_console_records_delivered_total",
    "Records written to the output sink",
    labelnames=["partition"],
)

receive_errors_total = Counter(
    "stream_console_receive_errors_total",
    "Failed receive calls",
    labelnames=["partition", "error_category"],
)

receive_retries_total = Counter(
    "stream_console_receive_retries_total",
    "Receive calls retried after a backoff",
    labelnames=["partition"],
)

active_partitions = Gauge(
    "stream_console_active_partitions",
    "Partitions with a running poller",
)


def record_delivered(partition_id: str, count: int = 1) -> None:
    if count:
        records_delivered_total.labels(partition=partition_id).inc(count)


def record_receive_error(partition_id: str, error_category: str) -> None:
    receive_errors_total.labels(partition=partition_id, error_category=error_category).inc()


def record_receive_retry(partition_id: str) -> None:
    receive_retries_total.labels(partition=partition_id).inc()


def start_metrics_server(preferred_port: int) -> int:
    """Start Prometheus metrics server with automatic port fallback.

    Returns actual port number that the server is listening on.
    """
    try:
        start_http_server(preferred_port, registry=REGISTRY)
        return preferred_port
    except OSError as e:
        if e.errno != errno.EADDRINUSE:
            raise
        logger.info(
            "Port already in use, finding available port",
            extra={"preferred_port": preferred_port},
        )
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("", 0))
            s.listen(1)
            available_port = s.getsockname()[1]

        start_http_server(available_port, registry=REGISTRY)
        return available_port
