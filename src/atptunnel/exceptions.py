"""Exception classes for atptunnel."""


class TunnelError(Exception):
    """Base exception for all tunnel operations."""

    pass


class ConfigError(TunnelError):
    """Configuration file or credential blob could not be loaded."""

    pass


class AuthError(TunnelError):
    """SSH agent unreachable, no identities, or identity resolution failed."""

    pass


class ConnError(TunnelError):
    """SSH transport dial, handshake, or remote listen failed."""

    pass


class ListenerClosed(ConnError):
    """The remote listener was closed and will not yield more streams."""

    pass


class ForwardError(TunnelError):
    """Forwarding failed for a single accepted connection."""

    def __init__(self, message: str, stage: str):
        self.stage = stage
        super().__init__(f"{stage}: {message}")
