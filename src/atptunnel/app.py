"""
Process orchestration.

Wires the pieces together in order: wallet, agent authentication, tunnel,
forwarder, accept loop. Any startup failure is fatal; per-connection
failures are handled inside the forwarder.
"""

import asyncio
import signal

from atptunnel.config import TunnelConfig
from atptunnel.exceptions import TunnelError
from atptunnel.tunnel.accept_loop import AcceptLoop
from atptunnel.tunnel.agent import authenticate
from atptunnel.tunnel.forwarder import ConnectionForwarder
from atptunnel.tunnel.session import Tunnel
from atptunnel.utils.logger import configure_logging, get_logger
from atptunnel.utils.wallet import read_wallet

logger = get_logger(__name__)


async def serve(config: TunnelConfig, *, home: str | None = None) -> None:
    """
    Run the tunnel until the listener closes or the task is cancelled.

    Raises:
        TunnelError: On any startup failure or loss of the SSH session.
    """
    wallet = read_wallet(config.database.wallet_file)
    credential = await authenticate(home)

    tunnel = Tunnel(
        config.ssh.endpoint,
        config.ssh.username,
        credential,
        listen_host=config.listen.host,
        listen_port=config.listen.port,
        known_hosts=config.ssh.known_hosts,
        connect_timeout=config.listen.ssh_connect_timeout,
        keepalive_interval=config.listen.keepalive_interval,
    )

    async with tunnel:
        forwarder = ConnectionForwarder(
            config.database.endpoint,
            wallet,
            connect_timeout=config.listen.connect_timeout,
            chunk_size=config.listen.chunk_size,
        )
        logger.info(
            f"Relaying {config.listen.host}:{config.listen.port} "
            f"-> {config.database.endpoint}"
        )
        await AcceptLoop(tunnel.listener, forwarder).run()


async def _serve_until_signalled(config: TunnelConfig) -> None:
    main_task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, main_task.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # Signal handlers unavailable (Windows / non-main thread)

    try:
        await serve(config)
    except asyncio.CancelledError:
        logger.info("Shutdown requested.")


def run(config: TunnelConfig) -> int:
    """
    Run the tunnel process.

    Returns:
        Process exit code: 0 after a requested shutdown, 1 on fatal error.
    """
    configure_logging(config.log_level, config.log_file or None)

    try:
        asyncio.run(_serve_until_signalled(config))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except TunnelError as e:
        logger.critical(f"FATAL: {e}")
        return 1
    return 0
