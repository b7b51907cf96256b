"""
Structured logging module.

Provides console/JSON logging with context propagation.
"""

from core.logging.context import (
    PartitionLogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import parse_log_level, setup_logging
from core.logging.utilities import log_exception

__all__ = [
    # Setup
    "setup_logging",
    "parse_log_level",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "PartitionLogContext",
    # Utilities
    "log_exception",
]
