"""Transport-agnostic record type shared by the Event Hub and Kafka adapters."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class StreamRecord:
    """One record received from a partition.

    Both transports are converted to this type so the poller and sinks never
    touch SDK objects.

    Attributes:
        partition_id: Partition the record was received from
        payload: Raw record body
        offset: Transport offset (string for Event Hub, int for Kafka)
        sequence_number: Monotonic position within the partition, if known
        enqueued_time: Broker-side timestamp, if known
    """

    partition_id: str
    payload: bytes
    offset: str | int | None = None
    sequence_number: int | None = None
    enqueued_time: datetime | None = None

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")
