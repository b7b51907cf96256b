"""Azure Event Hub stream client.

Builds a SAS connection string from the namespace, Event Hub name, key name
and token, and reads partitions through EventHubConsumerClient using AMQP
over WebSocket (port 443) for compatibility with Azure Private Link.

The SDK is callback based: receive_batch() runs until the client is closed
and hands batches to a callback. EventHubPartitionReceiver turns that into
the pull-style receive(max_count) the poller expects by running
receive_batch() for its partition in a background task that feeds a queue
of size one. The SDK therefore never runs more than one batch ahead of the
sink. If the background task dies, the next receive() raises its error and
the following one restarts the task just after the last delivered
sequence number.

No checkpoint store is configured: positions are held in memory only and a
restarted process begins again at the configured starting position.
"""

import asyncio
import logging
import re
from typing import Any

from azure.eventhub import EventData, TransportType
from azure.eventhub.aio import EventHubConsumerClient

from config.config import EventHubResource
from core.errors.exceptions import ConnectionError, PermanentError
from streamconsole.transport import StartPosition
from streamconsole.types import StreamRecord

logger = logging.getLogger(__name__)

# Event Hub position strings understood by the SDK
EARLIEST_POSITION = "-1"
LATEST_POSITION = "@latest"


def mask_connection_string(conn_str: str) -> str:
    if not conn_str:
        return ""

    return re.sub(
        r"(SharedAccessKey=)[^;]+",
        r"\1***MASKED***",
        conn_str,
        flags=re.IGNORECASE,
    )


def _event_body(event: EventData) -> bytes:
    body = event.body
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return b"".join(part if isinstance(part, bytes) else str(part).encode("utf-8") for part in body)


def to_stream_record(event: EventData, partition_id: str) -> StreamRecord:
    """Convert an SDK EventData into a StreamRecord."""
    return StreamRecord(
        partition_id=partition_id,
        payload=_event_body(event),
        offset=getattr(event, "offset", None),
        sequence_number=getattr(event, "sequence_number", None),
        enqueued_time=getattr(event, "enqueued_time", None),
    )


class EventHubPartitionReceiver:
    """Pull-style receiver for one Event Hub partition."""

    def __init__(
        self,
        client: EventHubConsumerClient,
        partition_id: str,
        start_position: StartPosition = StartPosition.EARLIEST,
        max_wait_time: float = 5.0,
    ) -> None:
        self.partition_id = partition_id
        self.start_position = start_position
        self.max_wait_time = max_wait_time
        self.last_sequence_number: int | None = None

        self._client = client
        self._queue: asyncio.Queue[list[EventData] | Exception] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _starting_position(self) -> tuple[Any, bool]:
        if self.last_sequence_number is not None:
            return self.last_sequence_number, False
        if self.start_position == StartPosition.LATEST:
            return LATEST_POSITION, False
        return EARLIEST_POSITION, False

    async def _on_event_batch(self, partition_context, events: list[EventData]) -> None:
        # Empty batches are forwarded too; they wake the poller every max_wait_time
        await self._queue.put(list(events or []))

    async def _on_error(self, partition_context, error: Exception) -> None:
        logger.warning(
            "Event Hub receive error: %s",
            error,
            extra={"error_type": type(error).__name__, "error_message": str(error)[:200]},
        )
        await self._queue.put(error)

    def _ensure_started(self, max_count: int) -> None:
        if self.running:
            return
        position, inclusive = self._starting_position()
        logger.debug(
            "Starting Event Hub partition receive",
            extra={"starting_position": str(position), "batch_size": max_count},
        )
        self._task = asyncio.create_task(
            self._client.receive_batch(
                on_event_batch=self._on_event_batch,
                on_error=self._on_error,
                partition_id=self.partition_id,
                max_batch_size=max_count,
                max_wait_time=self.max_wait_time,
                starting_position=position,
                starting_position_inclusive=inclusive,
            ),
            name=f"eventhub-receive-{self.partition_id}",
        )

    async def receive(self, max_count: int) -> list[StreamRecord]:
        if self._closed:
            raise PermanentError(f"Receiver for partition {self.partition_id} is closed")
        if self._queue.empty() and self._task is not None and self._task.done():
            # Report why the SDK loop ended before restarting it on the next call
            raise self._background_failure()
        self._ensure_started(max_count)

        if self._queue.empty():
            getter = asyncio.ensure_future(self._queue.get())
            try:
                done, _ = await asyncio.wait(
                    {getter, self._task}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                if not getter.done():
                    getter.cancel()
            if getter not in done:
                raise self._background_failure()
            item = getter.result()
        else:
            item = self._queue.get_nowait()

        if isinstance(item, Exception):
            raise item

        records = [to_stream_record(event, self.partition_id) for event in item]
        if records and records[-1].sequence_number is not None:
            self.last_sequence_number = records[-1].sequence_number
        return records

    def _background_failure(self) -> Exception:
        task = self._task
        self._task = None
        if task.cancelled():
            return ConnectionError(f"Event Hub receive for partition {self.partition_id} was cancelled")
        error = task.exception()
        if error is not None:
            return error
        return ConnectionError(f"Event Hub receive for partition {self.partition_id} ended unexpectedly")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None


class EventHubStreamClient:
    """StreamClient backed by azure-eventhub's EventHubConsumerClient.

    Args:
        resource: Namespace, Event Hub name and SAS credentials
        consumer_group: Consumer group to read with
        max_wait_time: Seconds the SDK waits before delivering an empty batch
    """

    def __init__(
        self,
        resource: EventHubResource,
        consumer_group: str = "$Default",
        max_wait_time: float = 5.0,
    ) -> None:
        self.resource = resource
        self.consumer_group = consumer_group
        self.max_wait_time = max_wait_time
        self.partition_ids: list[str] = []
        self._client: EventHubConsumerClient | None = None

    async def connect(self) -> None:
        conn_str = self.resource.connection_string()
        logger.info(
            "Connecting to Event Hub",
            extra={
                "namespace": self.resource.fully_qualified_namespace,
                "eventhub_name": self.resource.eventhub_name,
                "consumer_group": self.consumer_group,
                "connection_string_masked": mask_connection_string(conn_str),
            },
        )
        self._client = EventHubConsumerClient.from_connection_string(
            conn_str=conn_str,
            consumer_group=self.consumer_group,
            eventhub_name=self.resource.eventhub_name,
            transport_type=TransportType.AmqpOverWebsocket,
        )

    def _require_client(self) -> EventHubConsumerClient:
        if self._client is None:
            raise PermanentError("Event Hub client is not connected")
        return self._client

    async def get_partition_count(self) -> int:
        properties = await self._require_client().get_eventhub_properties()
        self.partition_ids = [str(pid) for pid in properties["partition_ids"]]
        return len(self.partition_ids)

    async def create_receiver(
        self, partition_id: str, start_position: StartPosition
    ) -> EventHubPartitionReceiver:
        client = self._require_client()
        if self.partition_ids and partition_id not in self.partition_ids:
            raise PermanentError(
                f"Partition {partition_id} does not exist on {self.resource.eventhub_name}"
            )
        return EventHubPartitionReceiver(
            client,
            partition_id,
            start_position=start_position,
            max_wait_time=self.max_wait_time,
        )

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.close()
        logger.info("Event Hub client closed", extra={"eventhub_name": self.resource.eventhub_name})
