"""Kafka stream client.

A short-lived metadata consumer answers the partition count; every partition
then gets its own AIOKafkaConsumer manually assigned to a single
TopicPartition. No group_id is set, so nothing is committed and partitions
are never rebalanced away from their poller.
"""

import logging
from datetime import UTC, datetime

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import ConsumerRecord, TopicPartition

from config.config import KafkaResource
from core.errors.exceptions import PermanentError
from streamconsole.transport import StartPosition
from streamconsole.types import StreamRecord

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "stream-console"


def to_stream_record(message: ConsumerRecord, partition_id: str) -> StreamRecord:
    """Convert an aiokafka ConsumerRecord into a StreamRecord."""
    enqueued_time = None
    if message.timestamp is not None and message.timestamp >= 0:
        enqueued_time = datetime.fromtimestamp(message.timestamp / 1000, tz=UTC)
    return StreamRecord(
        partition_id=partition_id,
        payload=message.value or b"",
        offset=message.offset,
        sequence_number=message.offset,
        enqueued_time=enqueued_time,
    )


class KafkaPartitionReceiver:
    """Receiver bound to one TopicPartition through its own consumer."""

    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        topic: str,
        partition_id: str,
        max_wait_time: float = 5.0,
    ) -> None:
        self.partition_id = partition_id
        self.max_wait_time = max_wait_time
        self._consumer = consumer
        self._tp = TopicPartition(topic, int(partition_id))
        self._closed = False

    @property
    def topic_partition(self) -> TopicPartition:
        return self._tp

    async def start(self, start_position: StartPosition) -> None:
        await self._consumer.start()
        self._consumer.assign([self._tp])
        if start_position == StartPosition.LATEST:
            await self._consumer.seek_to_end(self._tp)
        else:
            await self._consumer.seek_to_beginning(self._tp)

    async def receive(self, max_count: int) -> list[StreamRecord]:
        if self._closed:
            raise PermanentError(f"Receiver for partition {self.partition_id} is closed")
        data = await self._consumer.getmany(
            self._tp,
            timeout_ms=int(self.max_wait_time * 1000),
            max_records=max_count,
        )
        return [to_stream_record(message, self.partition_id) for message in data.get(self._tp, [])]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._consumer.stop()


class KafkaStreamClient:
    """StreamClient backed by aiokafka.

    Args:
        resource: Bootstrap servers and topic
        max_wait_time: Seconds getmany() waits before returning an empty batch
    """

    def __init__(self, resource: KafkaResource, max_wait_time: float = 5.0) -> None:
        self.resource = resource
        self.max_wait_time = max_wait_time
        self._metadata_consumer: AIOKafkaConsumer | None = None

    def _consumer_config(self, suffix: str) -> dict:
        return {
            "bootstrap_servers": self.resource.bootstrap_servers,
            "client_id": f"{CLIENT_ID_PREFIX}-{suffix}",
            "security_protocol": self.resource.security_protocol,
            "group_id": None,
            "enable_auto_commit": False,
        }

    async def connect(self) -> None:
        logger.info(
            "Connecting to Kafka",
            extra={"bootstrap_servers": self.resource.bootstrap_servers, "topic": self.resource.topic},
        )
        consumer = AIOKafkaConsumer(**self._consumer_config("metadata"))
        await consumer.start()
        self._metadata_consumer = consumer

    async def get_partition_count(self) -> int:
        if self._metadata_consumer is None:
            raise PermanentError("Kafka client is not connected")
        topics = await self._metadata_consumer.topics()
        if self.resource.topic not in topics:
            raise PermanentError(f"Topic {self.resource.topic} does not exist")
        partitions = self._metadata_consumer.partitions_for_topic(self.resource.topic) or set()
        return len(partitions)

    async def create_receiver(
        self, partition_id: str, start_position: StartPosition
    ) -> KafkaPartitionReceiver:
        consumer = AIOKafkaConsumer(**self._consumer_config(f"p{partition_id}"))
        receiver = KafkaPartitionReceiver(
            consumer,
            self.resource.topic,
            partition_id,
            max_wait_time=self.max_wait_time,
        )
        try:
            await receiver.start(start_position)
        except Exception:
            await consumer.stop()
            raise
        return receiver

    async def close(self) -> None:
        if self._metadata_consumer is None:
            return
        consumer, self._metadata_consumer = self._metadata_consumer, None
        await consumer.stop()
        logger.info("Kafka client closed", extra={"topic": self.resource.topic})
