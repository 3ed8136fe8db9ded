"""
SSH session and remote listener establishment.

Provides:
- establish(): connect to the SSH server and request a remote-bound listener
- Tunnel: async context manager owning the session and listener for the
  lifetime of a run
"""

import asyncio

import asyncssh

from atptunnel.exceptions import ConnError
from atptunnel.models.endpoint import Endpoint
from atptunnel.tunnel.agent import AgentCredential
from atptunnel.tunnel.listener import RemoteListener
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)


async def establish(
    endpoint: Endpoint,
    username: str,
    credential: AgentCredential,
    *,
    listen_host: str = "localhost",
    listen_port: int = 1522,
    known_hosts: str | None = None,
    connect_timeout: float | None = None,
    keepalive_interval: float | None = None,
) -> tuple[asyncssh.SSHClientConnection, RemoteListener]:
    """
    Open an SSH session and bind a listener on the remote side.

    Args:
        endpoint: SSH server address.
        username: SSH user to authenticate as.
        credential: Agent identities, tried in order.
        listen_host: Remote address to listen on.
        listen_port: Remote port to listen on.
        known_hosts: known_hosts file for host key checking (None = skip).
        connect_timeout: Seconds allowed for TCP connect plus SSH handshake.
        keepalive_interval: Seconds between keepalive requests (None = off).

    Returns:
        (connection, listener)

    Raises:
        ConnError: If the dial, handshake, authentication, or remote bind fails.
    """
    if known_hosts is None:
        logger.warning(f"Host key checking disabled for {endpoint}")

    options = {}
    if connect_timeout is not None:
        options["connect_timeout"] = connect_timeout
    if keepalive_interval is not None:
        options["keepalive_interval"] = keepalive_interval

    logger.info(f"Connecting to SSH server {endpoint} as {username}...")
    try:
        conn = await asyncssh.connect(
            endpoint.host,
            endpoint.port,
            username=username,
            client_keys=credential.keys,
            known_hosts=known_hosts,
            agent_path=None,
            **options,
        )
    except asyncio.TimeoutError as e:
        raise ConnError(f"Timeout connecting to SSH server {endpoint}") from e
    except (OSError, asyncssh.Error) as e:
        raise ConnError(f"Failed to connect to SSH server {endpoint}: {e}") from e

    logger.info(f"SSH session established with {endpoint}.")

    listener = RemoteListener(conn)
    try:
        server = await conn.start_server(
            listener.handler_factory, listen_host, listen_port, encoding=None
        )
    except (OSError, asyncssh.Error) as e:
        conn.close()
        await conn.wait_closed()
        raise ConnError(
            f"Failed to create remote listener on {listen_host}:{listen_port}: {e}"
        ) from e

    listener.attach(server)
    logger.info(f"Port forwarding started on {listen_host}:{listener.port}")
    return conn, listener


class Tunnel:
    """
    Scoped owner of the SSH session and its remote listener.

    Usage:
        async with Tunnel(endpoint, username, credential) as tunnel:
            async for stream in tunnel.listener:
                ...

    Leaving the block closes the listener, then the session.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        username: str,
        credential: AgentCredential,
        **options,
    ):
        self.endpoint = endpoint
        self.username = username
        self.credential = credential
        self.options = options
        self.session: asyncssh.SSHClientConnection | None = None
        self.listener: RemoteListener | None = None
        self._entered = False

    async def __aenter__(self) -> "Tunnel":
        if self._entered:
            raise ConnError("Tunnel session was already established")
        self._entered = True
        self.session, self.listener = await establish(
            self.endpoint, self.username, self.credential, **self.options
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self.listener is not None:
            self.listener.close()
            await self.listener.wait_closed()
        if self.session is not None:
            self.session.close()
            await self.session.wait_closed()
            logger.info(f"SSH session with {self.endpoint} closed.")
