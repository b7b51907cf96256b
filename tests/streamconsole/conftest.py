"""In-memory stream transport used by the poller and consumer tests."""

import asyncio

import pytest

from config.config import ConsumerSettings
from core.resilience.retry import RetryConfig
from streamconsole.transport import StartPosition
from streamconsole.types import StreamRecord


class FakeReceiver:
    """Scripted receiver.

    Each script item is either a list of payloads (one batch) or an exception
    to raise. Once the script is exhausted, receive() behaves like an idle
    partition and returns empty batches.
    """

    def __init__(self, partition_id: str, script=None, gate: asyncio.Event | None = None):
        self.partition_id = partition_id
        self.script = list(script or [])
        self.gate = gate
        self.receive_calls = 0
        self.requested_counts: list[int] = []
        self.closed = False
        self.close_error: Exception | None = None

    async def receive(self, max_count: int) -> list[StreamRecord]:
        if self.closed:
            raise AssertionError(f"receive() on closed receiver {self.partition_id}")
        self.receive_calls += 1
        self.requested_counts.append(max_count)
        if self.gate is not None:
            await self.gate.wait()
        if not self.script:
            await asyncio.sleep(0.005)
            return []
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return [
            StreamRecord(self.partition_id, p if isinstance(p, bytes) else p.encode("utf-8"))
            for p in item
        ]

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeStreamClient:
    """StreamClient over a fixed set of FakeReceivers."""

    def __init__(self, receivers: dict[str, FakeReceiver], open_errors: dict[str, Exception] | None = None):
        self.receivers = receivers
        self.open_errors = open_errors or {}
        self.connected = False
        self.closed = False
        self.connect_error: Exception | None = None
        self.partition_count_error: Exception | None = None
        self.create_calls: list[tuple[str, StartPosition]] = []

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def get_partition_count(self) -> int:
        if self.partition_count_error is not None:
            raise self.partition_count_error
        return len(self.receivers)

    async def create_receiver(self, partition_id: str, start_position: StartPosition) -> FakeReceiver:
        self.create_calls.append((partition_id, start_position))
        if partition_id in self.open_errors:
            raise self.open_errors[partition_id]
        return self.receivers[partition_id]

    async def close(self) -> None:
        self.closed = True


class ListSink:
    """Collects lines; optionally calls on_line after each write."""

    def __init__(self, on_line=None):
        self.lines: list[str] = []
        self.on_line = on_line

    def write(self, line: str) -> None:
        self.lines.append(line)
        if self.on_line is not None:
            self.on_line(self)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def settings(fast_retry):
    return ConsumerSettings(
        batch_size=10,
        shutdown_grace_seconds=0.1,
        receive_retry=fast_retry,
        open_retry=RetryConfig(max_attempts=1, base_delay=0, max_delay=0),
    )


@pytest.fixture
def make_client():
    def _make(scripts: dict[str, list] | int, **kwargs) -> FakeStreamClient:
        if isinstance(scripts, int):
            scripts = {str(i): [] for i in range(scripts)}
        receivers = {pid: FakeReceiver(pid, script) for pid, script in scripts.items()}
        return FakeStreamClient(receivers, **kwargs)

    return _make


@pytest.fixture
def make_receiver():
    def _make(partition_id: str = "0", script=None, gate: asyncio.Event | None = None) -> FakeReceiver:
        return FakeReceiver(partition_id, script, gate=gate)

    return _make


@pytest.fixture
def make_sink():
    return ListSink


@pytest.fixture
def eventually():
    return wait_until
