"""Stream console configuration.

Settings come from three layers, highest priority first:

1. Command-line flags (applied by the CLI as overrides)
2. Optional YAML file, ``consumer:`` section
3. Dataclass defaults

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax inside the YAML file, so credentials can stay out of the file itself.

Example config.yaml::

    consumer:
      batch_size: 10
      max_wait_time: 5
      starting_position: earliest
      consumer_group: $Default
      shutdown_grace_seconds: 5
      receive_retry:
        max_attempts: 5
        base_delay: 0.5
        max_delay: 30
    eventhub:
      namespace: ${EVENTHUB_NAMESPACE}
      eventhub_name: orders
      key_name: RootManageSharedAccessKey
      token: ${EVENTHUB_TOKEN}
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors.exceptions import ConfigurationError
from core.resilience.retry import RECEIVE_RETRY, RetryConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "STREAM_CONSOLE_CONFIG"

STARTING_POSITIONS = ("earliest", "latest")

EVENTHUB_DOMAIN_SUFFIX = "servicebus.windows.net"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
    return data


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _require(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ConfigurationError(f"{name} is required")
    return str(value).strip()


@dataclass(frozen=True)
class EventHubResource:
    """Credentials and coordinates of one Event Hub.

    The token is a pre-obtained SAS key value and is passed through untouched.
    """

    namespace: str
    eventhub_name: str
    key_name: str
    token: str = field(repr=False)

    def validate(self) -> None:
        _require(self.namespace, "Event Hub namespace")
        _require(self.eventhub_name, "Event Hub name")
        _require(self.key_name, "Shared access key name")
        _require(self.token, "Shared access token")
        if "/" in self.namespace or ";" in self.namespace:
            raise ConfigurationError(f"Invalid Event Hub namespace: {self.namespace!r}")

    @property
    def fully_qualified_namespace(self) -> str:
        """Accept either a bare namespace ("myns") or a host name."""
        if "." in self.namespace:
            return self.namespace
        return f"{self.namespace}.{EVENTHUB_DOMAIN_SUFFIX}"

    def connection_string(self) -> str:
        return (
            f"Endpoint=sb://{self.fully_qualified_namespace}/;"
            f"SharedAccessKeyName={self.key_name};"
            f"SharedAccessKey={self.token};"
            f"EntityPath={self.eventhub_name}"
        )


@dataclass(frozen=True)
class KafkaResource:
    """Bootstrap servers and topic of a Kafka stream."""

    bootstrap_servers: str
    topic: str
    security_protocol: str = "PLAINTEXT"

    def validate(self) -> None:
        servers = _require(self.bootstrap_servers, "Kafka bootstrap servers")
        _require(self.topic, "Kafka topic")
        for server in servers.split(","):
            host, _, port = server.strip().rpartition(":")
            if not host or not port.isdigit():
                raise ConfigurationError(
                    f"Invalid bootstrap server {server.strip()!r}, expected HOST:PORT"
                )


@dataclass
class ConsumerSettings:
    """Tuning for the partition pollers.

    All durations are in seconds.
    """

    batch_size: int = 10
    max_wait_time: float = 5.0
    starting_position: str = "earliest"
    consumer_group: str = "$Default"
    shutdown_grace_seconds: float = 5.0
    receive_retry: RetryConfig = field(
        default_factory=lambda: RetryConfig(
            max_attempts=RECEIVE_RETRY.max_attempts,
            base_delay=RECEIVE_RETRY.base_delay,
            max_delay=RECEIVE_RETRY.max_delay,
        )
    )
    open_retry: RetryConfig = field(
        default_factory=lambda: RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0)
    )

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.batch_size = int(self.batch_size)
        self.max_wait_time = float(self.max_wait_time)
        self.shutdown_grace_seconds = float(self.shutdown_grace_seconds)
        self.starting_position = str(self.starting_position).lower()
        if isinstance(self.receive_retry, dict):
            self.receive_retry = RetryConfig(**self.receive_retry)
        if isinstance(self.open_retry, dict):
            self.open_retry = RetryConfig(**self.open_retry)

    def validate(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_wait_time <= 0:
            raise ConfigurationError(f"max_wait_time must be positive, got {self.max_wait_time}")
        if self.shutdown_grace_seconds < 0:
            raise ConfigurationError("shutdown_grace_seconds must not be negative")
        if self.starting_position not in STARTING_POSITIONS:
            raise ConfigurationError(
                f"starting_position must be one of {STARTING_POSITIONS}, "
                f"got {self.starting_position!r}"
            )
        if not self.consumer_group.strip():
            raise ConfigurationError("consumer_group must not be empty")


def _build_settings(section: Dict[str, Any]) -> ConsumerSettings:
    known = {f.name for f in fields(ConsumerSettings)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(f"Unknown consumer settings: {', '.join(unknown)}")
    try:
        return ConsumerSettings(**section)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid consumer settings: {e}", cause=e) from e


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> tuple[ConsumerSettings, Dict[str, Any]]:
    """Load consumer settings and the raw transport sections.

    Args:
        config_path: YAML file; falls back to $STREAM_CONSOLE_CONFIG when None
        overrides: Values (typically CLI flags) applied over the file; None values are ignored

    Returns:
        Tuple of (validated ConsumerSettings, expanded YAML data for transport sections)

    Raises:
        ConfigurationError: If the file is missing or any value is invalid
    """
    if config_path is None and os.getenv(CONFIG_PATH_ENV_VAR):
        config_path = Path(os.environ[CONFIG_PATH_ENV_VAR])

    data: Dict[str, Any] = {}
    if config_path is not None:
        data = _expand_env_vars(load_yaml(Path(config_path)))
        logger.debug("Loaded configuration file", extra={"operation": str(config_path)})

    section = dict(data.get("consumer") or {})
    for key, value in (overrides or {}).items():
        if value is not None:
            section[key] = value

    settings = _build_settings(section)
    settings.validate()
    return settings, data


def build_eventhub_resource(
    data: Dict[str, Any],
    namespace: Optional[str] = None,
    eventhub_name: Optional[str] = None,
    key_name: Optional[str] = None,
    token: Optional[str] = None,
) -> EventHubResource:
    """Merge CLI credentials over the ``eventhub:`` section and validate."""
    section = data.get("eventhub") or {}
    resource = EventHubResource(
        namespace=namespace or section.get("namespace", ""),
        eventhub_name=eventhub_name or section.get("eventhub_name", ""),
        key_name=key_name or section.get("key_name", ""),
        token=token or section.get("token", ""),
    )
    resource.validate()
    return resource


def build_kafka_resource(
    data: Dict[str, Any],
    bootstrap_servers: Optional[str] = None,
    topic: Optional[str] = None,
) -> KafkaResource:
    """Merge CLI options over the ``kafka:`` section and validate."""
    section = data.get("kafka") or {}
    resource = KafkaResource(
        bootstrap_servers=bootstrap_servers or section.get("bootstrap_servers", ""),
        topic=topic or section.get("topic", ""),
        security_protocol=section.get("security_protocol", "PLAINTEXT"),
    )
    resource.validate()
    return resource
