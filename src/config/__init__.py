"""Configuration loading for the stream console.

Main Functions
--------------

    - load_config(): Load consumer settings from an optional YAML file plus overrides
    - build_eventhub_resource(): Validated Event Hub credentials
    - build_kafka_resource(): Validated Kafka bootstrap servers and topic

Usage
-----

    >>> from config import load_config, build_eventhub_resource
    >>> settings, data = load_config(overrides={"batch_size": 10})
    >>> resource = build_eventhub_resource(
    ...     data, namespace="myns", eventhub_name="orders",
    ...     key_name="ReadKey", token="secret",
    ... )
"""

from config.config import (
    ConsumerSettings,
    EventHubResource,
    KafkaResource,
    build_eventhub_resource,
    build_kafka_resource,
    load_config,
)

__all__ = [
    "load_config",
    "build_eventhub_resource",
    "build_kafka_resource",
    "ConsumerSettings",
    "EventHubResource",
    "KafkaResource",
]
