"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_worker_id: ContextVar[str] = ContextVar("worker_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_partition_id: ContextVar[str] = ContextVar("partition_id", default="")


def set_log_context(
    worker_id: Optional[str] = None,
    stage: Optional[str] = None,
    partition_id: Optional[str] = None,
) -> None:
    if worker_id is not None:
        _worker_id.set(worker_id)
    if stage is not None:
        _stage_name.set(stage)
    if partition_id is not None:
        _partition_id.set(partition_id)


def get_log_context() -> Dict[str, str]:
    return {
        "worker_id": _worker_id.get(),
        "stage": _stage_name.get(),
        "partition_id": _partition_id.get(),
    }


def clear_log_context() -> None:
    _worker_id.set("")
    _stage_name.set("")
    _partition_id.set("")


class PartitionLogContext:
    """
    Context manager that tags every log line in the block with a partition.

    Usage:
        with PartitionLogContext("3"):
            logger.info("Receiver opened")
    """

    def __init__(self, partition_id: str):
        self.partition_id = partition_id
        self._previous = ""

    def __enter__(self) -> "PartitionLogContext":
        self._previous = _partition_id.get()
        _partition_id.set(self.partition_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _partition_id.set(self._previous)
        return False
