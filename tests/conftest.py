"""Shared pytest fixtures for atptunnel tests."""

import asyncio

import pytest
import pytest_asyncio

from atptunnel.models.endpoint import Endpoint
from atptunnel.tunnel.stream import Stream


class RecordingTarget:
    """
    Loopback TCP server standing in for the database.

    Records every byte received per connection, in order. When `reply` is
    set, it is sent back after `expect` bytes have arrived, then the write
    side is half-closed.
    """

    def __init__(self, expect: int = 0, reply: bytes = b""):
        self.expect = expect
        self.reply = reply
        self.received: list[bytearray] = []
        self.connections = 0
        self._server: asyncio.AbstractServer | None = None
        self._handlers: set[asyncio.Task] = set()

    async def start(self) -> "RecordingTarget":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    @property
    def endpoint(self) -> Endpoint:
        port = self._server.sockets[0].getsockname()[1]
        return Endpoint("127.0.0.1", port)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._handlers.add(asyncio.current_task())
        self.connections += 1
        buf = bytearray()
        self.received.append(buf)
        replied = False
        try:
            while True:
                if self.reply and not replied and len(buf) >= self.expect:
                    writer.write(self.reply)
                    await writer.drain()
                    writer.write_eof()
                    replied = True
                data = await reader.read(65536)
                if not data:
                    break
                buf.extend(data)
        except OSError:
            pass
        finally:
            writer.close()
            self._handlers.discard(asyncio.current_task())

    async def close(self) -> None:
        self._server.close()
        await self._server.wait_closed()


class StreamFactory:
    """
    Produces accepted-side Streams backed by real loopback sockets.

    Each call to connect() returns (client_reader, client_writer, stream):
    the client pair plays the remote caller; `stream` is what the listener
    would hand to the forwarder.
    """

    def __init__(self):
        self._server: asyncio.AbstractServer | None = None
        self._accepted: asyncio.Queue = asyncio.Queue()

    async def start(self) -> "StreamFactory":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def _handle(self, reader, writer):
        stream = Stream(reader, writer, label=f"caller {self._accepted.qsize()}")
        await self._accepted.put(stream)
        await stream.wait_closed()

    async def connect(self):
        port = self._server.sockets[0].getsockname()[1]
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        stream = await asyncio.wait_for(self._accepted.get(), timeout=5)
        return reader, writer, stream

    async def close(self) -> None:
        self._server.close()
        await self._server.wait_closed()


@pytest_asyncio.fixture
async def stream_factory():
    factory = await StreamFactory().start()
    yield factory
    await factory.close()


@pytest_asyncio.fixture
async def make_target():
    """Create RecordingTarget servers; all are closed after the test."""
    targets = []

    async def _make(**kwargs) -> RecordingTarget:
        target = await RecordingTarget(**kwargs).start()
        targets.append(target)
        return target

    yield _make
    for target in targets:
        await target.close()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return port


@pytest.fixture
def config_yaml(tmp_path):
    """Write a valid tunnel.yaml plus wallet file and return the config path."""
    wallet_dir = tmp_path / "wallet"
    wallet_dir.mkdir()
    (wallet_dir / "cwallet.sso").write_bytes(b"WALLET_BYTES")

    config_path = tmp_path / "tunnel.yaml"
    config_path.write_text(
        f"""
ssh_hostname: bastion.example.com
ssh_port: 22
ssh_username: opc
database:
  atp_hostname: adb.example.com
  atp_port: 1522
  atp_wallet_path: {wallet_dir}
  atp_wallet_name: cwallet.sso
"""
    )
    return config_path
