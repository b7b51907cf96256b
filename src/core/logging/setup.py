"""Logging setup and configuration."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "azure",
    "azure.eventhub",
    "azure.eventhub._pyamqp",
    "uamqp",
    "aiokafka",
    "urllib3",
]


def setup_logging(
    name: str = "streamconsole",
    stage: str | None = None,
    worker_id: str | None = None,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    json_format: bool = False,
    log_file: Path | None = None,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure logging with a stderr console handler and an optional rotating file.

    Console output always goes to stderr: stdout is reserved for the record
    sink, so piping the consumer into another tool only ever sees records.

    Args:
        name: Logger name to return
        stage: Stage name injected into every log line (e.g. "eventhub")
        worker_id: Worker identifier for context
        console_level: Console handler level (default: INFO)
        json_format: Emit JSON lines on the console instead of the colored format
        log_file: Optional path for a JSON log file rotated at rotation_when
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate the log file ('midnight', 'H', ...)
        backup_count: Number of rotated files to keep
        suppress_noisy: Quiet down Azure SDK and Kafka client loggers

    Returns:
        Configured logger instance
    """
    if worker_id:
        set_log_context(worker_id=worker_id)
    if stage:
        set_log_context(stage=stage)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        JSONFormatter() if json_format else ConsoleFormatter(stream=sys.stderr)
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(min(console_level, file_level) if log_file else console_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized: file=%s, json=%s",
        log_file,
        json_format,
    )
    return logger


def parse_log_level(level: str | int) -> int:
    """Translate 'debug'/'INFO'/20 style values into a logging level."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved
