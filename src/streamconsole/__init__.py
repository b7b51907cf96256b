"""Multi-partition console consumer for Event Hub and Kafka streams.

Opens one receiver per partition, polls each partition in its own asyncio
task and prints every record to stdout as ``Partition <id>, Event <payload>``.
"""

from streamconsole.consumer import ConsoleConsumer, ConsumerState, ConsumerSummary
from streamconsole.poller import PartitionPoller
from streamconsole.sinks import ConsoleSink, OutputSink, format_record
from streamconsole.transport import (
    PartitionReceiver,
    StartPosition,
    StreamClient,
    TransportType,
    create_client,
)
from streamconsole.types import StreamRecord

__all__ = [
    "ConsoleConsumer",
    "ConsumerState",
    "ConsumerSummary",
    "PartitionPoller",
    "ConsoleSink",
    "OutputSink",
    "format_record",
    "PartitionReceiver",
    "StreamClient",
    "StartPosition",
    "TransportType",
    "create_client",
    "StreamRecord",
]
