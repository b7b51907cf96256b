"""JSON serialization helper for structured log records."""

from datetime import date, datetime
from pathlib import Path
from typing import Any


def json_serializer(obj: Any) -> Any:
    """
    Fallback serializer passed to json.dumps(default=...).

    - datetime/date -> ISO 8601 string
    - bytes -> UTF-8 text (undecodable bytes replaced)
    - Path -> string
    - Enums -> value
    - Everything else -> string
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "value"):
        return obj.value
    return str(obj)


__all__ = ["json_serializer"]
