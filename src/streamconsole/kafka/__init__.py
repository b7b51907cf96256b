"""Kafka transport (aiokafka)."""

from streamconsole.kafka.client import KafkaPartitionReceiver, KafkaStreamClient, to_stream_record

__all__ = ["KafkaStreamClient", "KafkaPartitionReceiver", "to_stream_record"]
