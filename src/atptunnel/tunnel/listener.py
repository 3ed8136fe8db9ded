"""
Remote-bound listener.

asyncssh delivers forwarded connections by calling a handler. RemoteListener
turns those callbacks into a pull-style sequence of Stream values that the
accept loop drains with accept() or `async for`.
"""

import asyncio

from atptunnel.exceptions import ConnError, ListenerClosed
from atptunnel.tunnel.stream import Stream
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)


class RemoteListener:
    """
    Streams accepted over the SSH session, one at a time, in arrival order.

    The sequence is infinite until close() is called or the session is lost,
    and it cannot be restarted afterwards.
    """

    def __init__(self, session=None):
        """
        Args:
            session: Object with an awaitable wait_closed() (the SSH client
                connection). When it closes, pending and future accept()
                calls raise ConnError.
        """
        self._session = session
        self._queue: asyncio.Queue[Stream] = asyncio.Queue()
        self._closed = asyncio.Event()
        self._lost: BaseException | None = None
        self._server = None
        self._watch_task: asyncio.Task | None = None

    def attach(self, server) -> None:
        """Attach the asyncssh SSHListener this object receives streams from."""
        self._server = server
        if self._session is not None and self._watch_task is None:
            self._watch_task = asyncio.create_task(self._watch_session())

    @property
    def port(self) -> int | None:
        if self._server is None:
            return None
        return self._server.get_port()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def _watch_session(self) -> None:
        try:
            await self._session.wait_closed()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._lost = e
        if not self.closed:
            logger.error("SSH session closed; remote listener is no longer usable.")
            if self._lost is None:
                self._lost = ConnError("SSH session closed")
            self._closed.set()

    async def handle_connection(self, reader, writer, peer=None) -> None:
        """asyncssh stream handler: queue the stream and hold the channel open."""
        if self.closed:
            writer.close()
            return
        if peer is None:
            peer = writer.get_extra_info("peername")
        stream = Stream(reader, writer, label=f"tunnel {peer}")
        logger.debug(f"[{stream.label}] Forwarded connection received.")
        await self._queue.put(stream)
        await stream.wait_closed()

    def handler_factory(self, orig_host: str, orig_port: int):
        """asyncssh handler factory for start_server(); labels streams by origin."""
        peer = (orig_host, orig_port)

        async def handler(reader, writer):
            await self.handle_connection(reader, writer, peer)

        return handler

    async def accept(self) -> Stream:
        """
        Wait for the next accepted stream.

        Raises:
            ListenerClosed: If close() was called.
            ConnError: If the SSH session was lost.
        """
        self._raise_if_closed()
        if not self._queue.empty():
            return self._queue.get_nowait()

        get_task = asyncio.ensure_future(self._queue.get())
        closed_task = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait(
                {get_task, closed_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            closed_task.cancel()
            if not get_task.done():
                get_task.cancel()

        if get_task.done() and not get_task.cancelled():
            return get_task.result()
        self._raise_if_closed()
        raise ListenerClosed("Remote listener closed")

    def _raise_if_closed(self) -> None:
        if not self.closed:
            return
        if self._lost is not None:
            if isinstance(self._lost, ConnError):
                raise self._lost
            raise ConnError(f"SSH session lost: {self._lost}") from self._lost
        raise ListenerClosed("Remote listener closed")

    def __aiter__(self):
        return self

    async def __anext__(self) -> Stream:
        try:
            return await self.accept()
        except ListenerClosed:
            raise StopAsyncIteration from None

    def close(self) -> None:
        """Stop accepting. Streams already handed out stay with their owners."""
        if self.closed:
            return
        self._closed.set()
        if self._server is not None:
            self._server.close()
        if self._watch_task is not None:
            self._watch_task.cancel()

    async def wait_closed(self) -> None:
        await self._closed.wait()
        if self._server is not None:
            await self._server.wait_closed()
        if self._watch_task is not None:
            await asyncio.gather(self._watch_task, return_exceptions=True)
        while not self._queue.empty():
            await self._queue.get_nowait().close()
