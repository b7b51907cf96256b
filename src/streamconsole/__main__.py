"""Stream console CLI. Use --help for usage.

Examples:
    stream-console eventhub -n myns -e orders -k ReadKey -t "$EVENTHUB_TOKEN"
    stream-console --from-latest kafka --bootstrap-servers localhost:9092 --topic orders
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from config.config import (
    ConsumerSettings,
    EventHubResource,
    KafkaResource,
    build_eventhub_resource,
    build_kafka_resource,
    load_config,
)
from core.errors.exceptions import ConfigurationError, StreamError
from core.logging.setup import parse_log_level, setup_logging
from core.logging.utilities import log_exception
from core.utils import generate_worker_id
from streamconsole.consumer import ConsoleConsumer
from streamconsole.metrics import start_metrics_server
from streamconsole.signals import remove_shutdown_signal_handlers, setup_shutdown_signal_handlers
from streamconsole.sinks import ConsoleSink, OutputSink
from streamconsole.transport import TransportType, create_client

# __main__.py is at src/streamconsole/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stream-console",
        description="Print every record of every partition of an Event Hub or Kafka topic",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: $STREAM_CONSOLE_CONFIG)",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Records per receive call (default: 10)")
    parser.add_argument(
        "--max-wait-time",
        type=float,
        default=None,
        help="Seconds a receive waits for records before returning empty (default: 5)",
    )
    parser.add_argument(
        "--from-latest",
        action="store_const",
        const="latest",
        dest="starting_position",
        default=None,
        help="Only print records enqueued after startup (default: start of stream)",
    )
    parser.add_argument("--consumer-group", default=None, help="Event Hub consumer group (default: $Default)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=os.getenv("JSON_LOGS", "false").lower() in ("true", "1", "yes"),
        help="Emit JSON log lines on stderr",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write JSON logs to this file")
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port",
    )

    subparsers = parser.add_subparsers(dest="transport", required=True, metavar="{eventhub,kafka}")

    eventhub = subparsers.add_parser(TransportType.EVENTHUB.value, help="Read an Azure Event Hub")
    eventhub.add_argument("-n", "--namespace", default=os.getenv("EVENTHUB_NAMESPACE"), help="Event Hub namespace")
    eventhub.add_argument("-e", "--eventhub-name", default=os.getenv("EVENTHUB_NAME"), help="Event Hub name")
    eventhub.add_argument(
        "-k",
        "--key-name",
        default=os.getenv("EVENTHUB_KEY_NAME"),
        help="Shared access key name",
    )
    eventhub.add_argument(
        "-t",
        "--token",
        default=os.getenv("EVENTHUB_TOKEN"),
        help="Shared access key (prefer $EVENTHUB_TOKEN to keep it out of shell history)",
    )

    kafka = subparsers.add_parser(TransportType.KAFKA.value, help="Read a Kafka topic")
    kafka.add_argument(
        "--bootstrap-servers",
        default=os.getenv("KAFKA_BOOTSTRAP_SERVERS"),
        help="Comma separated HOST:PORT list",
    )
    kafka.add_argument("--topic", default=os.getenv("KAFKA_TOPIC"), help="Topic to read")

    return parser


def _settings_overrides(args: argparse.Namespace) -> dict:
    return {
        "batch_size": args.batch_size,
        "max_wait_time": args.max_wait_time,
        "starting_position": args.starting_position,
        "consumer_group": args.consumer_group,
    }


def _build_resource(args: argparse.Namespace, data: dict) -> EventHubResource | KafkaResource:
    if args.transport == TransportType.EVENTHUB:
        return build_eventhub_resource(
            data,
            namespace=args.namespace,
            eventhub_name=args.eventhub_name,
            key_name=args.key_name,
            token=args.token,
        )
    return build_kafka_resource(data, bootstrap_servers=args.bootstrap_servers, topic=args.topic)


async def run_console(
    transport: TransportType | str,
    resource: EventHubResource | KafkaResource,
    settings: ConsumerSettings,
    sink: OutputSink | None = None,
    parser: argparse.ArgumentParser | None = None,
) -> int:
    """Run the console consumer until stopped; returns the process exit code.

    When parser is given, a startup failure also prints its usage line to
    stderr along with the reason, as for a bad argument.
    """
    client = create_client(transport, resource, settings)
    consumer = ConsoleConsumer(client, sink or ConsoleSink(), settings)
    setup_shutdown_signal_handlers(consumer.stop)
    try:
        summary = await consumer.run()
    except StreamError as e:
        log_exception(logger, e, "Console consumer failed to start", include_traceback=False)
        if parser is not None:
            parser.print_usage(sys.stderr)
            sys.stderr.write(f"{parser.prog}: error: could not start consuming: {e.message}\n")
        return EXIT_FAILURE
    finally:
        remove_shutdown_signal_handlers()

    if summary.failed_partitions:
        logger.error(
            "%d partitions stopped with terminal errors: %s",
            len(summary.failed_partitions),
            ", ".join(sorted(summary.failed_partitions, key=int)),
            extra={"partitions_failed": len(summary.failed_partitions)},
        )
        return EXIT_FAILURE
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")

    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_USAGE

    try:
        settings, data = load_config(args.config, overrides=_settings_overrides(args))
        resource = _build_resource(args, data)
    except ConfigurationError as e:
        parser.print_usage(sys.stderr)
        sys.stderr.write(f"{parser.prog}: error: {e}\n")
        return EXIT_USAGE

    worker_id = os.getenv("WORKER_ID") or generate_worker_id(args.transport)
    setup_logging(
        stage=args.transport,
        worker_id=worker_id,
        console_level=parse_log_level(args.log_level),
        json_format=args.json_logs,
        log_file=args.log_file,
    )

    if args.metrics_port:
        actual_port = start_metrics_server(args.metrics_port)
        logger.info("Metrics server listening", extra={"operation": f"port {actual_port}"})

    try:
        return asyncio.run(run_console(args.transport, resource, settings, parser=parser))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_FAILURE


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
