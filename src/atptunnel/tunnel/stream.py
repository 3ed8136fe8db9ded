"""Stream wrapper and one-direction byte pipe."""

import asyncio

import asyncssh

# Errors a reader/writer may raise once the peer is gone.
STREAM_ERRORS = (OSError, asyncssh.Error)


class Stream:
    """
    One connection: either a stream accepted over the SSH tunnel or a
    dialed target connection.

    Works with both asyncio.StreamReader/StreamWriter and asyncssh's
    SSHReader/SSHWriter. A stream is closed exactly once and never reused.
    """

    def __init__(self, reader, writer, label: str = ""):
        self.reader = reader
        self.writer = writer
        self.label = label or str(writer.get_extra_info("peername"))
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def read(self, n: int) -> bytes:
        return await self.reader.read(n)

    async def write(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()

    def write_eof(self) -> None:
        """Half-close the write side, if the transport supports it."""
        if self.closed:
            return
        try:
            if self.writer.can_write_eof() and not self.writer.is_closing():
                self.writer.write_eof()
        except STREAM_ERRORS:
            pass

    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        if self.closed:
            return
        self._closed.set()
        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=1.0)
        except (asyncio.TimeoutError, *STREAM_ERRORS):
            pass

    async def wait_closed(self) -> None:
        """Wait until close() has been called by the stream's owner."""
        await self._closed.wait()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Stream {self.label} {state}>"


async def pipe(src: Stream, dst: Stream, chunk_size: int = 65536) -> int:
    """
    Copy bytes from src to dst until EOF, then half-close dst.

    Args:
        src: Stream to read from.
        dst: Stream to write to.
        chunk_size: Maximum bytes per read.

    Returns:
        Number of bytes copied.

    Raises:
        OSError, asyncssh.Error: On read or write failure.
    """
    total = 0
    while True:
        data = await src.read(chunk_size)
        if not data:
            break
        await dst.write(data)
        total += len(data)
    dst.write_eof()
    return total
