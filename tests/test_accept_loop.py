"""Tests for the accept loop."""

import asyncio

import pytest

from atptunnel.exceptions import ConnError
from atptunnel.models.endpoint import Endpoint
from atptunnel.models.enums import ForwardOutcome
from atptunnel.tunnel.accept_loop import AcceptLoop, run
from atptunnel.tunnel.forwarder import ConnectionForwarder, ForwardResult

WALLET = b"WALLET_BYTES"


class FakeListener:
    """Async-iterable listener fed by the test."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, stream) -> None:
        self._queue.put_nowait(stream)

    def finish(self) -> None:
        self._queue.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeStream:
    def __init__(self, label: str):
        self.label = label
        self.closed = False

    async def close(self):
        self.closed = True


class RecordingForwarder:
    """Forwarder that records streams and blocks until released."""

    def __init__(self):
        self.started: list = []
        self.release = asyncio.Event()
        self.cancelled: list = []

    async def forward(self, stream) -> ForwardResult:
        self.started.append(stream)
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled.append(stream)
            await stream.close()
            raise
        await stream.close()
        return ForwardResult(label=stream.label, outcome=ForwardOutcome.COMPLETED)


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestAcceptLoopDispatch:
    @pytest.mark.asyncio
    async def test_no_connections_no_tasks(self):
        """A listener that yields nothing produces no forwarding tasks."""
        listener = FakeListener()
        forwarder = RecordingForwarder()
        listener.finish()

        loop = await run(listener, forwarder)

        assert loop.accepted == 0
        assert loop.active == 0
        assert forwarder.started == []

    @pytest.mark.asyncio
    async def test_accept_not_blocked_by_forward_in_progress(self):
        """Streams are dispatched while earlier forwards are still running."""
        listener = FakeListener()
        forwarder = RecordingForwarder()
        loop = AcceptLoop(listener, forwarder)
        run_task = asyncio.create_task(loop.run())

        for index in range(3):
            listener.push(FakeStream(f"conn-{index}"))

        await _wait_for(lambda: len(forwarder.started) == 3)
        assert loop.active == 3
        assert loop.accepted == 3

        forwarder.release.set()
        await _wait_for(lambda: loop.active == 0)
        assert loop.completed == 3

        listener.finish()
        await asyncio.wait_for(run_task, timeout=5)

    @pytest.mark.asyncio
    async def test_crashing_forward_is_contained(self):
        """An unexpected exception in one forward is counted, not propagated."""

        class CrashingForwarder:
            calls = 0

            async def forward(self, stream):
                CrashingForwarder.calls += 1
                if CrashingForwarder.calls == 1:
                    raise RuntimeError("boom")
                return ForwardResult(label=stream.label, outcome=ForwardOutcome.COMPLETED)

        listener = FakeListener()
        loop = AcceptLoop(listener, CrashingForwarder())
        run_task = asyncio.create_task(loop.run())

        listener.push(FakeStream("a"))
        listener.push(FakeStream("b"))
        await _wait_for(lambda: loop.failed + loop.completed == 2)
        assert not run_task.done()

        listener.finish()
        await asyncio.wait_for(run_task, timeout=5)
        assert loop.failed == 1
        assert loop.completed == 1


class TestAcceptLoopFailures:
    @pytest.mark.asyncio
    async def test_accept_failure_is_fatal(self):
        """A failed accept ends the loop with ConnError and cancels in-flight forwards."""
        listener = FakeListener()
        forwarder = RecordingForwarder()
        loop = AcceptLoop(listener, forwarder)
        run_task = asyncio.create_task(loop.run())

        stream = FakeStream("in-flight")
        listener.push(stream)
        await _wait_for(lambda: len(forwarder.started) == 1)

        listener.fail(ConnError("SSH session closed"))
        with pytest.raises(ConnError, match="SSH session closed"):
            await asyncio.wait_for(run_task, timeout=5)

        assert forwarder.cancelled == [stream]
        assert stream.closed
        assert loop.active == 0

    @pytest.mark.asyncio
    async def test_cancel_run_cancels_forwards(self):
        listener = FakeListener()
        forwarder = RecordingForwarder()
        loop = AcceptLoop(listener, forwarder)
        run_task = asyncio.create_task(loop.run())

        listener.push(FakeStream("x"))
        await _wait_for(lambda: len(forwarder.started) == 1)

        run_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run_task

        assert len(forwarder.cancelled) == 1
        assert loop.active == 0

    @pytest.mark.asyncio
    async def test_dial_failure_only_closes_affected_stream(
        self, stream_factory, make_target, closed_port
    ):
        """
        A refused target dial closes that one accepted stream; the loop keeps
        accepting and later connections are forwarded normally.
        """
        target = await make_target()
        forwarder = ConnectionForwarder(Endpoint("127.0.0.1", closed_port), WALLET)
        listener = FakeListener()
        loop = AcceptLoop(listener, forwarder)
        run_task = asyncio.create_task(loop.run())

        # First connection: target refuses
        bad_reader, bad_writer, bad_stream = await stream_factory.connect()
        listener.push(bad_stream)
        assert await asyncio.wait_for(bad_reader.read(), timeout=5) == b""
        await _wait_for(lambda: loop.failed == 1)
        assert not run_task.done()

        # Second connection: target reachable again
        forwarder.target = target.endpoint
        _, good_writer, good_stream = await stream_factory.connect()
        listener.push(good_stream)
        good_writer.write(b"SELECT 1")
        await good_writer.drain()
        good_writer.write_eof()

        await _wait_for(lambda: loop.completed == 1)
        assert bytes(target.received[0]) == WALLET + b"SELECT 1"
        assert loop.accepted == 2
        assert not run_task.done()

        listener.finish()
        await asyncio.wait_for(run_task, timeout=5)
        bad_writer.close()
        good_writer.close()
