"""
Tunnel configuration for atptunnel.

This module defines the immutable configuration dataclasses and the loader
for the YAML configuration file.

Usage:
    from atptunnel.config import load_config

    config = load_config("tunnel.yaml")
    print(config.ssh.endpoint, config.database.wallet_file)
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from atptunnel.exceptions import ConfigError
from atptunnel.models.enums import LogLevel
from atptunnel.models.endpoint import Endpoint
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "tunnel.yaml"
DEFAULT_LISTEN_HOST = "localhost"
DEFAULT_LISTEN_PORT = 1522


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass(frozen=True)
class SSHConfig:
    """
    Secure transport endpoint.

    Attributes:
        hostname: SSH server to connect to.
        port: SSH server port.
        username: User to authenticate as.
        known_hosts: known_hosts file for host key checking (None = skip).
    """

    hostname: str
    port: int
    username: str
    known_hosts: str | None = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.hostname, self.port)


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Forwarding target and the credential blob sent to it.

    Attributes:
        hostname: Target host every accepted connection is relayed to.
        port: Target port.
        wallet_path: Directory holding the wallet file.
        wallet_name: Wallet file name inside wallet_path.
    """

    hostname: str
    port: int
    wallet_path: str
    wallet_name: str

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.hostname, self.port)

    @property
    def wallet_file(self) -> Path:
        return Path(os.path.expanduser(self.wallet_path)) / self.wallet_name


@dataclass(frozen=True)
class ListenConfig:
    """
    Remote listener and per-connection tuning.

    Attributes:
        host: Address the remote listener binds to on the SSH server side.
        port: Port of the remote listener.
        connect_timeout: Seconds to wait when dialing the target (None = wait forever).
        ssh_connect_timeout: Seconds to wait for the SSH handshake.
        keepalive_interval: Seconds between SSH keepalives (None = disabled).
        chunk_size: Maximum bytes read per relay step.
    """

    host: str = DEFAULT_LISTEN_HOST
    port: int = DEFAULT_LISTEN_PORT
    connect_timeout: float | None = 15.0
    ssh_connect_timeout: float | None = 30.0
    keepalive_interval: float | None = None
    chunk_size: int = 65536


@dataclass(frozen=True)
class TunnelConfig:
    """Complete process configuration. Immutable after load."""

    ssh: SSHConfig
    database: DatabaseConfig
    listen: ListenConfig = field(default_factory=ListenConfig)
    log_level: LogLevel = LogLevel.INFO
    log_file: str = ""

    def with_listen(self, host: str, port: int) -> "TunnelConfig":
        """Return a copy listening on a different address."""
        _check_port(port, "listen port")
        return replace(self, listen=replace(self.listen, host=host, port=port))


# =============================================================================
# Field Validation
# =============================================================================


def _check_port(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not 1 <= value <= 65535:
        raise ConfigError(f"{name} must be between 1 and 65535, got {value}")
    return value


def _require_str(section: dict, key: str, prefix: str = "") -> str:
    value = section.get(key)
    if value is None:
        raise ConfigError(f"Missing required setting '{prefix}{key}'")
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Setting '{prefix}{key}' must be a non-empty string")
    return value.strip()


def _require_port(section: dict, key: str, prefix: str = "") -> int:
    if key not in section:
        raise ConfigError(f"Missing required setting '{prefix}{key}'")
    return _check_port(section[key], f"'{prefix}{key}'")


def _optional_seconds(section: dict, key: str, default: float | None) -> float | None:
    if key not in section:
        return default
    value = section[key]
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"Setting 'tunnel.{key}' must be a positive number")
    return float(value)


def _section(data: dict, key: str, required: bool) -> dict:
    value = data.get(key)
    if value is None:
        if required:
            raise ConfigError(f"Missing required section '{key}'")
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{key}' must be a mapping")
    return value


# =============================================================================
# Loading
# =============================================================================


def parse_config(data: Any) -> TunnelConfig:
    """
    Build a TunnelConfig from an already-parsed YAML document.

    Raises:
        ConfigError: If a required setting is missing or malformed.
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    known_hosts = data.get("ssh_known_hosts")
    if known_hosts is not None and not isinstance(known_hosts, str):
        raise ConfigError("Setting 'ssh_known_hosts' must be a string")

    ssh = SSHConfig(
        hostname=_require_str(data, "ssh_hostname"),
        port=_require_port(data, "ssh_port"),
        username=_require_str(data, "ssh_username"),
        known_hosts=os.path.expanduser(known_hosts) if known_hosts else None,
    )

    db = _section(data, "database", required=True)
    database = DatabaseConfig(
        hostname=_require_str(db, "atp_hostname", "database."),
        port=_require_port(db, "atp_port", "database."),
        wallet_path=_require_str(db, "atp_wallet_path", "database."),
        wallet_name=_require_str(db, "atp_wallet_name", "database."),
    )

    tun = _section(data, "tunnel", required=False)
    chunk_size = tun.get("chunk_size", 65536)
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ConfigError("Setting 'tunnel.chunk_size' must be a positive integer")
    listen = ListenConfig(
        host=(
            _require_str(tun, "listen_host", "tunnel.")
            if "listen_host" in tun
            else DEFAULT_LISTEN_HOST
        ),
        port=(
            _require_port(tun, "listen_port", "tunnel.")
            if "listen_port" in tun
            else DEFAULT_LISTEN_PORT
        ),
        connect_timeout=_optional_seconds(tun, "connect_timeout", 15.0),
        ssh_connect_timeout=_optional_seconds(tun, "ssh_connect_timeout", 30.0),
        keepalive_interval=_optional_seconds(tun, "keepalive_interval", None),
        chunk_size=chunk_size,
    )

    try:
        log_level = LogLevel(str(data.get("log_level", LogLevel.INFO.value)).lower())
    except ValueError:
        choices = ", ".join(level.value for level in LogLevel)
        raise ConfigError(f"Setting 'log_level' must be one of: {choices}") from None

    return TunnelConfig(
        ssh=ssh,
        database=database,
        listen=listen,
        log_level=log_level,
        log_file=str(data.get("log_file") or ""),
    )


def load_config(path: str | os.PathLike = DEFAULT_CONFIG_FILE) -> TunnelConfig:
    """
    Read and validate the YAML configuration file.

    Args:
        path: Path to the configuration file (supports ~ expansion).

    Returns:
        The loaded TunnelConfig.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or does
            not contain the required settings.
    """
    config_path = Path(os.path.expanduser(str(path)))
    try:
        content = config_path.read_text()
    except OSError as e:
        raise ConfigError(f"Failed to read config file '{path}': {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file '{path}': {e}") from e

    config = parse_config(data)
    logger.debug(f"Loaded configuration from {config_path}")
    return config
