"""
Wallet (credential blob) loading.

The wallet is read once at startup and written verbatim to every dialed
target connection as its preamble.
"""

import os
from pathlib import Path

from atptunnel.exceptions import ConfigError
from atptunnel.utils.logger import get_logger

logger = get_logger(__name__)


def read_wallet(wallet_path: str | os.PathLike, wallet_name: str | None = None) -> bytes:
    """
    Read the wallet file into memory.

    Args:
        wallet_path: Wallet directory, or the full file path when
            wallet_name is omitted (supports ~ expansion).
        wallet_name: File name inside wallet_path.

    Returns:
        The raw wallet bytes.

    Raises:
        ConfigError: If the file does not exist or cannot be read.
    """
    path = Path(os.path.expanduser(str(wallet_path)))
    if wallet_name:
        path = path / wallet_name

    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise ConfigError(f"Wallet file not found: '{path}'") from None
    except OSError as e:
        raise ConfigError(f"Error reading wallet file '{path}': {e}") from e

    if not data:
        logger.warning(f"Wallet file '{path}' is empty; no preamble will be sent.")
    else:
        logger.debug(f"Loaded wallet '{path}' ({len(data)} bytes)")

    return data
