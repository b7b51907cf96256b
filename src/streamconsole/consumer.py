"""Console consumer: opens every partition of a stream and polls them concurrently.

Lifecycle::

    CONNECTING -> ENUMERATING -> POLLING -> STOPPING -> TERMINATED

Partitions whose receiver cannot be opened (after a short retry) are logged
and skipped; startup only fails when no partition could be opened at all.
A terminal receive error ends that partition's poller while the others keep
running. stop() sets the shared stop event: pollers finish their current
batch and exit, and any still running after shutdown_grace_seconds are
cancelled. Every receiver is closed before the client connection.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from config.config import ConsumerSettings
from core.errors.exceptions import PermanentError, StreamError
from core.errors.transport_classifier import TransportErrorClassifier
from core.logging.context import PartitionLogContext
from core.logging.utilities import log_exception
from core.resilience.retry import with_retry_async
from streamconsole.poller import PartitionPoller
from streamconsole.sinks import ConsoleSink, OutputSink
from streamconsole.transport import PartitionReceiver, StartPosition, StreamClient

logger = logging.getLogger(__name__)


class ConsumerState(StrEnum):
    CREATED = "created"
    CONNECTING = "connecting"
    ENUMERATING = "enumerating"
    POLLING = "polling"
    STOPPING = "stopping"
    TERMINATED = "terminated"


@dataclass
class ConsumerSummary:
    """Outcome of one ConsoleConsumer.run()."""

    partition_count: int = 0
    opened_partitions: list[str] = field(default_factory=list)
    skipped_partitions: dict[str, Exception] = field(default_factory=dict)
    failed_partitions: dict[str, Exception] = field(default_factory=dict)
    cancelled_partitions: list[str] = field(default_factory=list)
    records_delivered: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed_partitions


class ConsoleConsumer:
    """Runs one PartitionPoller per partition of a stream resource.

    Args:
        client: Unconnected stream client; the consumer connects and closes it
        sink: Output for delivered records (stdout when None)
        settings: Batch size, start position, retry policies, grace period
        on_retry: Optional observability hook passed to every poller
    """

    def __init__(
        self,
        client: StreamClient,
        sink: OutputSink | None = None,
        settings: ConsumerSettings | None = None,
        on_retry: Callable[[Exception, int, float], None] | None = None,
    ) -> None:
        self.client = client
        self.sink = sink if sink is not None else ConsoleSink()
        self.settings = settings or ConsumerSettings()
        self.on_retry = on_retry
        self.state = ConsumerState.CREATED

        self._stop_event = asyncio.Event()
        self._pollers: dict[str, PartitionPoller] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def start_position(self) -> StartPosition:
        return StartPosition(self.settings.starting_position)

    @property
    def pollers(self) -> dict[str, PartitionPoller]:
        return dict(self._pollers)

    def stop(self) -> None:
        """Request a graceful shutdown; safe to call from a signal handler."""
        if not self._stop_event.is_set():
            logger.info("Shutdown requested, stopping partition pollers")
            self._stop_event.set()

    async def run(self) -> ConsumerSummary:
        """Connect, open every partition and poll until stopped or all pollers end.

        Raises:
            StreamError: Connecting, enumerating partitions, or opening any receiver failed
        """
        summary = ConsumerSummary()
        try:
            self.state = ConsumerState.CONNECTING
            await self._startup_call("connect", self.client.connect)

            self.state = ConsumerState.ENUMERATING
            summary.partition_count = await self._startup_call(
                "get_partition_count", self.client.get_partition_count
            )
            if summary.partition_count <= 0:
                raise PermanentError("Stream reports no partitions")
            logger.info(
                "Discovered %d partitions",
                summary.partition_count,
                extra={"partition_count": summary.partition_count},
            )

            self.state = ConsumerState.POLLING
            for index in range(summary.partition_count):
                if self._stop_event.is_set():
                    break
                partition_id = str(index)
                receiver = await self._open_receiver(partition_id, summary)
                if receiver is not None:
                    self._start_poller(partition_id, receiver)
                    summary.opened_partitions.append(partition_id)

            logger.info(
                "Polling %d of %d partitions",
                len(summary.opened_partitions),
                summary.partition_count,
                extra={
                    "partitions_opened": len(summary.opened_partitions),
                    "partitions_failed": len(summary.skipped_partitions),
                    "starting_position": self.start_position.value,
                },
            )

            if not self._tasks and not self._stop_event.is_set():
                raise PermanentError(
                    f"None of the {summary.partition_count} partition receivers could be opened"
                )

            await self._wait_for_pollers()
        finally:
            self.state = ConsumerState.STOPPING
            await self._cancel_pollers()
            self._collect_results(summary)
            await self._close_client()
            self.state = ConsumerState.TERMINATED

        logger.info(
            "Console consumer finished",
            extra={
                "records_delivered": summary.records_delivered,
                "partition_count": summary.partition_count,
            },
        )
        return summary

    async def _startup_call(self, operation: str, func):
        try:
            return await func()
        except StreamError:
            raise
        except Exception as e:
            raise TransportErrorClassifier.classify_receive_error(
                e, {"service": "stream_client", "operation": operation}
            ) from e

    async def _open_receiver(
        self, partition_id: str, summary: ConsumerSummary
    ) -> PartitionReceiver | None:
        """Create the receiver for one partition, or log and skip it."""

        @with_retry_async(config=self.settings.open_retry, stop_event=self._stop_event)
        async def open_receiver() -> PartitionReceiver:
            return await self.client.create_receiver(partition_id, self.start_position)

        try:
            return await open_receiver()
        except Exception as e:
            if self._stop_event.is_set():
                with PartitionLogContext(partition_id):
                    logger.info("Shutdown requested while opening receiver, not retrying")
                return None
            summary.skipped_partitions[partition_id] = e
            with PartitionLogContext(partition_id):
                log_exception(
                    logger,
                    e,
                    "Could not open receiver, skipping partition",
                    include_traceback=False,
                )
            return None

    def _start_poller(self, partition_id: str, receiver: PartitionReceiver) -> None:
        poller = PartitionPoller(
            receiver,
            partition_id,
            self.sink,
            batch_size=self.settings.batch_size,
            retry_config=self.settings.receive_retry,
            stop_event=self._stop_event,
            on_retry=self.on_retry,
        )
        self._pollers[partition_id] = poller
        self._tasks[partition_id] = asyncio.create_task(
            poller.run(), name=f"partition-poller-{partition_id}"
        )

    async def _wait_for_pollers(self) -> None:
        """Block until every poller ends or a stop is requested plus the grace period."""
        tasks = list(self._tasks.values())
        stop_wait = asyncio.create_task(self._stop_event.wait())
        try:
            pending = set(tasks)
            while pending and not self._stop_event.is_set():
                _, pending = await asyncio.wait(
                    pending | {stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                pending.discard(stop_wait)
        finally:
            stop_wait.cancel()

        pending = [t for t in tasks if not t.done()]
        if not pending:
            return

        self.state = ConsumerState.STOPPING
        grace = self.settings.shutdown_grace_seconds
        _, still_running = await asyncio.wait(pending, timeout=grace)
        if still_running:
            logger.warning(
                "Grace period of %.1fs expired, cancelling %d pollers",
                grace,
                len(still_running),
            )

    async def _cancel_pollers(self) -> None:
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _collect_results(self, summary: ConsumerSummary) -> None:
        for partition_id, task in self._tasks.items():
            poller = self._pollers[partition_id]
            summary.records_delivered += poller.records_delivered
            if task.cancelled():
                summary.cancelled_partitions.append(partition_id)
                continue
            error = task.exception()
            if error is not None:
                summary.failed_partitions[partition_id] = error
                with PartitionLogContext(partition_id):
                    log_exception(
                        logger,
                        error,
                        "Partition poller ended with a terminal error",
                        include_traceback=False,
                    )

    async def _close_client(self) -> None:
        try:
            await self.client.close()
        except Exception as e:
            logger.warning(
                "Error closing stream client: %s",
                e,
                extra={"error_type": type(e).__name__},
            )
