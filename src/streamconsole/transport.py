"""Transport layer abstraction for Event Hub and Kafka.

The poller and consumer only depend on the two protocols defined here:

- StreamClient: connect, report the partition count, open per-partition receivers
- PartitionReceiver: receive a bounded batch of records, close

Concrete adapters live in streamconsole.eventhub (azure-eventhub, AMQP over
WebSocket) and streamconsole.kafka (aiokafka). Use create_client() to build
the one matching the selected transport.
"""

import logging
from enum import StrEnum
from typing import Protocol

from config.config import ConsumerSettings, EventHubResource, KafkaResource
from core.errors.exceptions import ConfigurationError
from streamconsole.types import StreamRecord

logger = logging.getLogger(__name__)


class TransportType(StrEnum):
    """Transport protocol type."""

    EVENTHUB = "eventhub"
    KAFKA = "kafka"


class StartPosition(StrEnum):
    """Where a freshly opened receiver starts reading."""

    EARLIEST = "earliest"
    LATEST = "latest"


class PartitionReceiver(Protocol):
    """Receiver handle bound to exactly one partition."""

    partition_id: str

    async def receive(self, max_count: int) -> list[StreamRecord]:
        """Return up to max_count records; may return an empty list on timeout.

        Raises on transport failure.
        """
        ...

    async def close(self) -> None: ...


class StreamClient(Protocol):
    """Connection to one partitioned stream resource."""

    async def connect(self) -> None: ...

    async def get_partition_count(self) -> int: ...

    async def create_receiver(
        self, partition_id: str, start_position: StartPosition
    ) -> PartitionReceiver: ...

    async def close(self) -> None: ...


def create_client(
    transport_type: TransportType | str,
    resource: EventHubResource | KafkaResource,
    settings: ConsumerSettings,
) -> StreamClient:
    """Create the stream client for the given transport.

    Args:
        transport_type: "eventhub" or "kafka"
        resource: Validated resource matching the transport
        settings: Consumer settings (consumer group, receive wait time)

    Raises:
        ConfigurationError: Unknown transport or mismatched resource type
    """
    try:
        transport_type = TransportType(transport_type)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid transport '{transport_type}'. Must be 'eventhub' or 'kafka'."
        ) from e

    if transport_type == TransportType.EVENTHUB:
        if not isinstance(resource, EventHubResource):
            raise ConfigurationError("Event Hub transport requires an EventHubResource")
        from streamconsole.eventhub.client import EventHubStreamClient

        logger.debug("Creating Event Hub stream client", extra={"eventhub_name": resource.eventhub_name})
        return EventHubStreamClient(
            resource,
            consumer_group=settings.consumer_group,
            max_wait_time=settings.max_wait_time,
        )

    if not isinstance(resource, KafkaResource):
        raise ConfigurationError("Kafka transport requires a KafkaResource")
    from streamconsole.kafka.client import KafkaStreamClient

    logger.debug("Creating Kafka stream client", extra={"topic": resource.topic})
    return KafkaStreamClient(resource, max_wait_time=settings.max_wait_time)


__all__ = [
    "TransportType",
    "StartPosition",
    "PartitionReceiver",
    "StreamClient",
    "create_client",
]
