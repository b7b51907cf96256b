"""Tests for record formatting and the console sink."""

import io
from datetime import UTC, datetime
from unittest.mock import MagicMock

from streamconsole.sinks import ConsoleSink, format_record
from streamconsole.types import StreamRecord


class TestFormatRecord:

    def test_formats_partition_and_payload(self):
        assert format_record(StreamRecord("2", b"hello")) == "Partition 2, Event hello"

    def test_utf8_payload(self):
        record = StreamRecord("0", "café ☕".encode("utf-8"))
        assert format_record(record) == "Partition 0, Event café ☕"

    def test_undecodable_bytes_are_replaced(self):
        record = StreamRecord("1", b"ok\xff")
        assert format_record(record) == "Partition 1, Event ok�"

    def test_empty_payload(self):
        assert format_record(StreamRecord("7", b"")) == "Partition 7, Event "

    def test_metadata_does_not_change_line(self):
        record = StreamRecord(
            "4",
            b"{}",
            offset="1024",
            sequence_number=12,
            enqueued_time=datetime(2024, 1, 1, tzinfo=UTC),
        )
        assert format_record(record) == "Partition 4, Event {}"


class TestConsoleSink:

    def test_writes_line_and_newline_in_one_call(self):
        stream = MagicMock()
        sink = ConsoleSink(stream=stream)

        sink.write("Partition 2, Event hello")

        stream.write.assert_called_once_with("Partition 2, Event hello\n")
        stream.flush.assert_called_once()
        assert sink.lines_written == 1

    def test_flush_can_be_disabled(self):
        stream = MagicMock()
        ConsoleSink(stream=stream, flush=False).write("x")

        stream.flush.assert_not_called()

    def test_preserves_write_order(self):
        stream = io.StringIO()
        sink = ConsoleSink(stream=stream)

        for line in ("a", "b", "c"):
            sink.write(line)

        assert stream.getvalue() == "a\nb\nc\n"

    def test_defaults_to_stdout(self, capsys):
        ConsoleSink().write("Partition 0, Event hi")

        captured = capsys.readouterr()
        assert captured.out == "Partition 0, Event hi\n"
        assert captured.err == ""
