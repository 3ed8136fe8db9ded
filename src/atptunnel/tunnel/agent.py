"""
SSH agent authentication.

Obtains signing identities from a running ssh-agent listening on
~/.ssh/agent.sock and wraps them in a credential for the SSH session.
"""

import base64
import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path

import asyncssh

from atptunnel.exceptions import AuthError
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)

AGENT_SOCKET_NAME = "agent.sock"


@dataclass
class AgentCredential:
    """
    Identities reported by the agent, in the order the agent returned them.

    The SSH session offers the keys in this order until one is accepted.
    Signing goes through the agent, which asyncssh reopens on demand, so the
    connection used to list the keys does not have to stay open.
    """

    keys: list = field(default_factory=list)
    socket_path: str = ""

    def fingerprints(self) -> list[str]:
        return [key_fingerprint(key) for key in self.keys]

    def describe(self) -> list[tuple[str, str, str]]:
        """Return (algorithm, fingerprint, comment) for each identity."""
        rows = []
        for key in self.keys:
            comment = key.get_comment() or ""
            rows.append((key.algorithm.decode("ascii"), key_fingerprint(key), comment))
        return rows

    def __len__(self) -> int:
        return len(self.keys)


def key_fingerprint(key) -> str:
    """OpenSSH-style SHA256 fingerprint of an agent key's public blob."""
    digest = hashlib.sha256(key.public_data).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def agent_socket_path(home: str | os.PathLike | None = None) -> Path:
    """
    Get the agent socket path under the user's home directory.

    Raises:
        AuthError: If the home directory cannot be resolved.
    """
    if home is None:
        try:
            home = Path.home()
        except (RuntimeError, KeyError) as e:
            raise AuthError(f"Cannot resolve current user's home directory: {e}") from e
    return Path(home) / ".ssh" / AGENT_SOCKET_NAME


async def authenticate(
    home: str | os.PathLike | None = None,
    *,
    socket_path: str | os.PathLike | None = None,
    connector=asyncssh.connect_agent,
) -> AgentCredential:
    """
    Load all identities from the SSH agent.

    Args:
        home: Home directory holding .ssh/agent.sock (default: current user's).
        socket_path: Explicit agent socket, overrides home.
        connector: Coroutine function opening an agent client for a path.

    Returns:
        AgentCredential with every identity the agent reported.

    Raises:
        AuthError: If the agent cannot be reached or offers no identities.
    """
    path = str(socket_path) if socket_path else str(agent_socket_path(home))
    logger.debug(f"Connecting to SSH agent at {path}")

    try:
        agent = await connector(path)
    except (OSError, asyncssh.Error) as e:
        raise AuthError(f"Failed to connect to SSH agent at {path}: {e}") from e

    if agent is None:
        raise AuthError(f"Failed to connect to SSH agent at {path}")

    try:
        keys = await agent.get_keys()
    except (OSError, asyncssh.Error, ValueError) as e:
        raise AuthError(f"Failed to list SSH agent identities: {e}") from e
    finally:
        agent.close()
        await agent.wait_closed()

    if not keys:
        raise AuthError(f"SSH agent at {path} has no identities loaded")

    credential = AgentCredential(keys=list(keys), socket_path=path)
    logger.info(f"Loaded {len(credential)} identities from SSH agent")
    for fingerprint in credential.fingerprints():
        logger.debug(f"  agent identity {fingerprint}")
    return credential
