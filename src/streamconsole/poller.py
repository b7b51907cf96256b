"""Receive loop for a single partition."""

import asyncio
import logging
from collections.abc import Callable

from core.errors.exceptions import PartitionExhaustedError, StreamError
from core.errors.transport_classifier import TransportErrorClassifier
from core.logging.context import PartitionLogContext
from core.resilience.retry import (
    RECEIVE_RETRY,
    RetryConfig,
    backoff,
    log_retry_attempt,
    safe_invoke_on_retry,
)
from streamconsole import metrics
from streamconsole.sinks import OutputSink, format_record
from streamconsole.transport import PartitionReceiver
from streamconsole.types import StreamRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


class PartitionPoller:
    """Drains one partition into an output sink until told to stop.

    Each iteration asks the receiver for up to batch_size records and writes
    every record of that batch to the sink, in order, before the next receive
    is issued. Failed receives are retried with exponential backoff; after
    retry_config.max_attempts consecutive failures (or a single permanent
    failure) the poller raises PartitionExhaustedError. A successful receive
    resets the failure count.

    The receiver is owned by the poller and is closed when run() returns,
    raises or is cancelled.

    Args:
        receiver: Receiver handle for this partition
        partition_id: Partition identifier, used in output lines and logs
        sink: Destination for formatted records
        batch_size: Maximum records requested per receive call
        retry_config: Backoff policy for failed receives
        stop_event: Shared event; when set, no further receive is issued
        on_retry: Optional hook called as on_retry(error, attempt, delay) before each backoff
    """

    def __init__(
        self,
        receiver: PartitionReceiver,
        partition_id: str,
        sink: OutputSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_config: RetryConfig | None = None,
        stop_event: asyncio.Event | None = None,
        on_retry: Callable[[Exception, int, float], None] | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.receiver = receiver
        self.partition_id = str(partition_id)
        self.sink = sink
        self.batch_size = batch_size
        self.retry_config = retry_config or RECEIVE_RETRY
        self.stop_event = stop_event or asyncio.Event()
        self.on_retry = on_retry

        self.records_delivered = 0
        self.batches_received = 0
        self.receive_failures = 0
        self._consecutive_failures = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self) -> int:
        """Poll until the stop event is set.

        Returns:
            Number of records delivered to the sink

        Raises:
            PartitionExhaustedError: Receive failures exhausted the retry policy
        """
        with PartitionLogContext(self.partition_id):
            metrics.active_partitions.inc()
            logger.info("Partition poller started", extra={"batch_size": self.batch_size})
            try:
                while not self.stop_event.is_set():
                    try:
                        batch = await self.receiver.receive(self.batch_size)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        await self._handle_receive_error(e)
                        continue

                    self._consecutive_failures = 0
                    self._deliver(batch)

                logger.info(
                    "Partition poller stopped",
                    extra={"records_delivered": self.records_delivered},
                )
                return self.records_delivered
            finally:
                metrics.active_partitions.dec()
                await self._close_receiver()

    def _deliver(self, batch: list[StreamRecord]) -> None:
        self.batches_received += 1
        for record in batch:
            self.sink.write(format_record(record))
        self.records_delivered += len(batch)
        metrics.record_delivered(self.partition_id, len(batch))

    async def _handle_receive_error(self, error: Exception) -> None:
        """Back off after a failed receive, or raise once the policy gives up."""
        classified: StreamError = TransportErrorClassifier.classify_receive_error(
            error, {"partition_id": self.partition_id}
        )
        attempt = self._consecutive_failures
        self._consecutive_failures += 1
        self.receive_failures += 1
        metrics.record_receive_error(self.partition_id, classified.category.value)

        if not self.retry_config.should_retry(classified, attempt):
            logger.error(
                "Giving up on partition after %d consecutive receive failures",
                attempt + 1,
                extra={
                    "error_category": classified.category.value,
                    "error_type": type(error).__name__,
                    "error_message": str(error)[:200],
                    "attempt": attempt + 1,
                },
            )
            raise PartitionExhaustedError(self.partition_id, attempt + 1, cause=classified) from error

        delay = self.retry_config.get_delay(attempt)
        operation = f"receive[partition={self.partition_id}]"
        log_retry_attempt(operation, attempt, self.retry_config, delay, classified)
        metrics.record_receive_retry(self.partition_id)
        if self.on_retry:
            safe_invoke_on_retry(self.on_retry, classified, attempt, delay, operation)

        # A zero delay still yields so a failing receiver cannot starve other partitions
        await backoff(delay, self.stop_event)

    async def _close_receiver(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.receiver.close()
            logger.debug("Partition receiver closed")
        except Exception as e:
            logger.warning(
                "Error closing partition receiver: %s",
                e,
                extra={"error_type": type(e).__name__, "error_message": str(e)[:200]},
            )
