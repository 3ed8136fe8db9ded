"""Accept loop: dispatch every accepted stream to its own forwarding task."""

import asyncio

from atptunnel.exceptions import ConnError
from atptunnel.tunnel.forwarder import ConnectionForwarder, ForwardResult
from atptunnel.tunnel.stream import Stream
from atptunnel.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


class AcceptLoop:
    """
    Drives a listener and forwards each accepted stream concurrently.

    Acceptance never waits on a forward in progress. A failed forward only
    affects its own connection; a failed accept ends the loop.
    """

    def __init__(self, listener, forwarder: ConnectionForwarder):
        self.listener = listener
        self.forwarder = forwarder
        self.accepted = 0
        self.completed = 0
        self.failed = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        """Number of forwarding tasks still running."""
        return len(self._tasks)

    def _dispatch(self, stream: Stream) -> asyncio.Task:
        self.accepted += 1
        task = asyncio.create_task(
            self.forwarder.forward(stream), name=f"forward {stream.label}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_forward_done)
        return task

    def _on_forward_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                f"Forwarding task '{task.get_name()}' crashed: "
                f"{format_traceback(exc)}"
            )
            return

        result: ForwardResult = task.result()
        if result.ok:
            self.completed += 1
        else:
            self.failed += 1

    async def run(self) -> None:
        """
        Accept until the listener is closed.

        Raises:
            ConnError: If accepting fails (e.g. the SSH session was lost).
        """
        logger.info("Waiting for forwarded connections...")
        try:
            async for stream in self.listener:
                logger.info(f"[{stream.label}] Accepted connection.")
                self._dispatch(stream)
        except ConnError as e:
            logger.critical(f"Failed to accept connection: {e}")
            raise
        finally:
            await self.shutdown()

        logger.info(
            f"Listener closed after {self.accepted} connections "
            f"({self.completed} completed, {self.failed} failed)."
        )

    async def shutdown(self) -> None:
        """Cancel in-flight forwards and wait for them to release their streams."""
        if not self._tasks:
            return
        logger.info(f"Cancelling {len(self._tasks)} active forwards...")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def run(listener, forwarder: ConnectionForwarder) -> AcceptLoop:
    """Run an accept loop for listener until it closes. Returns the loop for stats."""
    loop = AcceptLoop(listener, forwarder)
    await loop.run()
    return loop
