"""Output sinks for delivered records."""

import sys
from typing import Protocol, TextIO

from streamconsole.types import StreamRecord


def format_record(record: StreamRecord) -> str:
    """Render a record as ``Partition <id>, Event <payload>``.

    Undecodable bytes are replaced rather than dropping the record.
    """
    return f"Partition {record.partition_id}, Event {record.text}"


class OutputSink(Protocol):
    """Line-oriented destination for formatted records."""

    def write(self, line: str) -> None: ...


class ConsoleSink:
    """Writes one line per record to a text stream (stdout by default).

    Each line and its newline go out in a single write() call so lines from
    different partitions never interleave mid-line.
    """

    def __init__(self, stream: TextIO | None = None, flush: bool = True) -> None:
        self._stream = stream
        self._flush = flush
        self.lines_written = 0

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys replacement of sys.stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    def write(self, line: str) -> None:
        stream = self.stream
        stream.write(line + "\n")
        if self._flush:
            stream.flush()
        self.lines_written += 1
