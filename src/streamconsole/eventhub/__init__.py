"""Event Hub transport (azure-eventhub, AMQP over WebSocket)."""

from streamconsole.eventhub.client import (
    EventHubPartitionReceiver,
    EventHubStreamClient,
    mask_connection_string,
    to_stream_record,
)

__all__ = [
    "EventHubStreamClient",
    "EventHubPartitionReceiver",
    "mask_connection_string",
    "to_stream_record",
]
