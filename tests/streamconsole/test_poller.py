"""Tests for the single-partition receive loop."""

import asyncio
from unittest.mock import MagicMock

import pytest

from core.errors.exceptions import ConnectionError, PartitionExhaustedError, PermanentError
from core.resilience.retry import RetryConfig
from streamconsole.poller import PartitionPoller


def _stop_after(n_lines: int, stop_event: asyncio.Event):
    def on_line(sink):
        if len(sink.lines) >= n_lines:
            stop_event.set()

    return on_line


class TestPartitionPollerDelivery:

    async def test_delivers_batches_in_order(self, make_receiver, make_sink, fast_retry):
        stop = asyncio.Event()
        receiver = make_receiver("3", [["a", "b"], ["c"], ["d", "e"]])
        sink = make_sink(on_line=_stop_after(5, stop))
        poller = PartitionPoller(receiver, "3", sink, batch_size=2, retry_config=fast_retry, stop_event=stop)

        delivered = await asyncio.wait_for(poller.run(), timeout=2)

        assert delivered == 5
        assert sink.lines == [
            "Partition 3, Event a",
            "Partition 3, Event b",
            "Partition 3, Event c",
            "Partition 3, Event d",
            "Partition 3, Event e",
        ]
        assert receiver.requested_counts == [2, 2, 2]
        assert poller.batches_received == 3

    async def test_batch_fully_written_before_next_receive(self, make_receiver, make_sink, fast_retry):
        stop = asyncio.Event()
        sink = make_sink(on_line=_stop_after(6, stop))
        receiver = make_receiver("0", [["1", "2", "3"], ["4", "5"], ["6"]])
        lines_seen_at_receive = []
        original_receive = receiver.receive

        async def receive(max_count):
            lines_seen_at_receive.append(len(sink.lines))
            return await original_receive(max_count)

        receiver.receive = receive
        poller = PartitionPoller(receiver, "0", sink, retry_config=fast_retry, stop_event=stop)

        await asyncio.wait_for(poller.run(), timeout=2)

        assert lines_seen_at_receive == [0, 3, 5]

    async def test_empty_batches_keep_polling(self, make_receiver, make_sink, fast_retry):
        stop = asyncio.Event()
        receiver = make_receiver("0", [[], [], ["late"]])
        sink = make_sink(on_line=_stop_after(1, stop))
        poller = PartitionPoller(receiver, "0", sink, retry_config=fast_retry, stop_event=stop)

        await asyncio.wait_for(poller.run(), timeout=2)

        assert sink.lines == ["Partition 0, Event late"]
        assert receiver.receive_calls == 3

    def test_rejects_non_positive_batch_size(self, make_receiver, make_sink):
        with pytest.raises(ValueError, match="batch_size"):
            PartitionPoller(make_receiver(), "0", make_sink(), batch_size=0)

    def test_default_batch_size_is_ten(self, make_receiver, make_sink):
        poller = PartitionPoller(make_receiver(), "0", make_sink())
        assert poller.batch_size == 10


class TestPartitionPollerRetry:

    async def test_recovers_after_single_failure(self, make_receiver, make_sink, fast_retry):
        stop = asyncio.Event()
        receiver = make_receiver("1", [RuntimeError("connection reset by peer"), ["hello"]])
        sink = make_sink(on_line=_stop_after(1, stop))
        poller = PartitionPoller(receiver, "1", sink, retry_config=fast_retry, stop_event=stop)

        await asyncio.wait_for(poller.run(), timeout=2)

        assert sink.lines == ["Partition 1, Event hello"]
        assert poller.receive_failures == 1

    async def test_on_retry_hook_receives_classified_error(self, make_receiver, make_sink, fast_retry):
        stop = asyncio.Event()
        on_retry = MagicMock()
        receiver = make_receiver("0", [RuntimeError("connection refused"), ["x"]])
        sink = make_sink(on_line=_stop_after(1, stop))
        poller = PartitionPoller(
            receiver, "0", sink, retry_config=fast_retry, stop_event=stop, on_retry=on_retry
        )

        await asyncio.wait_for(poller.run(), timeout=2)

        on_retry.assert_called_once()
        error, attempt, delay = on_retry.call_args[0]
        assert isinstance(error, ConnectionError)
        assert attempt == 0
        assert delay == 0

    async def test_raises_after_max_consecutive_failures(self, make_receiver, make_sink, fast_retry):
        failures = [ConnectionError("link detached") for _ in range(3)]
        receiver = make_receiver("2", failures + [["never"]])
        sink = make_sink()
        poller = PartitionPoller(receiver, "2", sink, retry_config=fast_retry)

        with pytest.raises(PartitionExhaustedError) as exc_info:
            await asyncio.wait_for(poller.run(), timeout=2)

        assert exc_info.value.partition_id == "2"
        assert exc_info.value.attempts == 3
        assert sink.lines == []
        assert receiver.closed

    async def test_permanent_error_stops_immediately(self, make_receiver, make_sink, fast_retry):
        receiver = make_receiver("0", [PermanentError("partition deleted"), ["never"]])
        poller = PartitionPoller(receiver, "0", make_sink(), retry_config=fast_retry)

        with pytest.raises(PartitionExhaustedError) as exc_info:
            await poller.run()

        assert exc_info.value.attempts == 1
        assert receiver.receive_calls == 1

    async def test_success_resets_failure_count(self, make_receiver, make_sink):
        stop = asyncio.Event()
        retry = RetryConfig(max_attempts=2, base_delay=0, max_delay=0)
        script = [
            ConnectionError("drop"), ["a"],
            ConnectionError("drop"), ["b"],
            ConnectionError("drop"), ["c"],
        ]
        receiver = make_receiver("0", script)
        sink = make_sink(on_line=_stop_after(3, stop))
        poller = PartitionPoller(receiver, "0", sink, retry_config=retry, stop_event=stop)

        await asyncio.wait_for(poller.run(), timeout=2)

        assert [line[-1] for line in sink.lines] == ["a", "b", "c"]
        assert poller.receive_failures == 3

    async def test_stop_interrupts_backoff(self, make_receiver, make_sink):
        stop = asyncio.Event()
        retry = RetryConfig(max_attempts=5, base_delay=60, max_delay=60)
        receiver = make_receiver("0", [ConnectionError("drop")])
        poller = PartitionPoller(receiver, "0", make_sink(), retry_config=retry, stop_event=stop)

        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.05)
        stop.set()

        assert await asyncio.wait_for(task, timeout=1) == 0
        assert receiver.receive_calls == 1
        assert receiver.closed


class TestPartitionPollerShutdown:

    async def test_stop_event_set_before_run_issues_no_receive(self, make_receiver, make_sink):
        stop = asyncio.Event()
        stop.set()
        receiver = make_receiver("0", [["x"]])
        poller = PartitionPoller(receiver, "0", make_sink(), stop_event=stop)

        assert await poller.run() == 0
        assert receiver.receive_calls == 0
        assert receiver.closed
        assert poller.closed

    async def test_cancellation_closes_receiver(self, make_receiver, make_sink):
        receiver = make_receiver("0", gate=asyncio.Event())
        poller = PartitionPoller(receiver, "0", make_sink())

        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert receiver.closed

    async def test_close_error_is_logged_not_raised(self, make_receiver, make_sink, caplog):
        stop = asyncio.Event()
        stop.set()
        receiver = make_receiver("0")
        receiver.close_error = RuntimeError("already detached")
        poller = PartitionPoller(receiver, "0", make_sink(), stop_event=stop)

        assert await poller.run() == 0
        assert "Error closing partition receiver" in caplog.text
