"""
SSH remote-forward tunnel.

This package authenticates against the local SSH agent, opens an SSH
session with a remote-bound listener, and relays every connection accepted
on that listener to a fixed target endpoint.
"""

from atptunnel.tunnel.accept_loop import AcceptLoop, run
from atptunnel.tunnel.agent import AgentCredential, agent_socket_path, authenticate
from atptunnel.tunnel.forwarder import (
    ConnectionForwarder,
    ForwardResult,
    static_preamble,
)
from atptunnel.tunnel.listener import RemoteListener
from atptunnel.tunnel.session import Tunnel, establish
from atptunnel.tunnel.stream import Stream, pipe

__all__ = [
    "AcceptLoop",
    "AgentCredential",
    "ConnectionForwarder",
    "ForwardResult",
    "RemoteListener",
    "Stream",
    "Tunnel",
    "agent_socket_path",
    "authenticate",
    "establish",
    "pipe",
    "run",
    "static_preamble",
]
