"""
Per-connection forwarding.

For each stream accepted over the tunnel, the forwarder dials the target,
sends the preamble, then relays bytes in both directions until both sides
reach EOF or one side fails.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from atptunnel.exceptions import ForwardError
from atptunnel.models.endpoint import Endpoint
from atptunnel.models.enums import ForwardOutcome
from atptunnel.tunnel.stream import Stream, pipe
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)

PreambleHook = Callable[[Stream], Awaitable[None]]


def static_preamble(data: bytes) -> PreambleHook:
    """Build a preamble hook that writes fixed bytes to the target."""

    async def write_preamble(target: Stream) -> None:
        if data:
            await target.write(data)

    return write_preamble


@dataclass
class ForwardResult:
    """Outcome of forwarding one accepted connection."""

    label: str
    outcome: ForwardOutcome
    bytes_to_target: int = 0
    bytes_to_client: int = 0
    error: ForwardError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == ForwardOutcome.COMPLETED


class ConnectionForwarder:
    """Relays accepted streams to a fixed target endpoint."""

    def __init__(
        self,
        target: Endpoint,
        preamble: bytes | PreambleHook | None = None,
        *,
        connect_timeout: float | None = None,
        chunk_size: int = 65536,
    ):
        """
        Args:
            target: Endpoint every accepted stream is relayed to.
            preamble: Bytes (or an async hook) written to each dialed target
                before any relayed data.
            connect_timeout: Seconds to wait for the target dial (None = no limit).
            chunk_size: Maximum bytes read per relay step.
        """
        self.target = target
        if preamble is None or isinstance(preamble, (bytes, bytearray)):
            preamble = static_preamble(bytes(preamble or b""))
        self.preamble = preamble
        self.connect_timeout = connect_timeout
        self.chunk_size = chunk_size

    async def _dial(self) -> Stream:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.target.host, self.target.port),
            timeout=self.connect_timeout,
        )
        return Stream(reader, writer, label=f"target {self.target}")

    async def forward(self, accepted: Stream) -> ForwardResult:
        """
        Forward one accepted stream. Never raises except on cancellation.

        Failures are logged and reported in the returned ForwardResult.

        Both streams are closed before this returns.
        """
        log_prefix = f"[{accepted.label}]"
        target: Stream | None = None
        result = ForwardResult(label=accepted.label, outcome=ForwardOutcome.COMPLETED)

        try:
            # Dial target
            try:
                logger.debug(f"{log_prefix} Connecting to target {self.target}...")
                target = await self._dial()
            except asyncio.TimeoutError:
                raise ForwardError(
                    f"timeout connecting to {self.target}",
                    ForwardOutcome.DIAL_FAILED.value,
                ) from None
            except OSError as e:
                raise ForwardError(
                    f"cannot connect to {self.target}: {e}",
                    ForwardOutcome.DIAL_FAILED.value,
                ) from e
            logger.info(f"{log_prefix} Connected to target {self.target}.")

            # Preamble goes out before any relayed byte
            try:
                await self.preamble(target)
            except Exception as e:
                raise ForwardError(
                    f"failed to write preamble: {e}",
                    ForwardOutcome.PREAMBLE_FAILED.value,
                ) from e

            await self._relay(accepted, target, result)

        except ForwardError as e:
            result.outcome = ForwardOutcome(e.stage)
            result.error = e
            logger.warning(f"{log_prefix} Forwarding failed: {e}")

        finally:
            await accepted.close()
            if target is not None:
                await target.close()

        if result.ok:
            logger.info(
                f"{log_prefix} Forwarding finished "
                f"(sent {result.bytes_to_target} bytes, "
                f"received {result.bytes_to_client} bytes)."
            )
        return result

    async def _relay(
        self, accepted: Stream, target: Stream, result: ForwardResult
    ) -> None:
        """
        Run both relay directions and join them.

        Each direction half-closes its own destination on EOF. The first
        direction to fail closes both streams, which ends the other one.
        """
        upstream = asyncio.create_task(pipe(accepted, target, self.chunk_size))
        downstream = asyncio.create_task(pipe(target, accepted, self.chunk_size))
        pending = {upstream, downstream}
        error: BaseException | None = None

        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    exc = task.exception()
                    if exc is not None and error is None:
                        error = exc
                        await accepted.close()
                        await target.close()
        except asyncio.CancelledError:
            upstream.cancel()
            downstream.cancel()
            await asyncio.gather(upstream, downstream, return_exceptions=True)
            raise

        if not upstream.exception():
            result.bytes_to_target = upstream.result()
        if not downstream.exception():
            result.bytes_to_client = downstream.result()

        if error is not None:
            raise ForwardError(
                f"relay error: {error}", ForwardOutcome.RELAY_FAILED.value
            ) from error
