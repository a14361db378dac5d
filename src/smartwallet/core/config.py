"""
Smart wallet configuration.

All values come from ``SMARTWALLET_*`` environment variables, read once at
import time. Integer settings that cannot be parsed raise
ConfigurationError instead of silently falling back.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from .blockchain_exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        )
    if value < minimum:
        raise ConfigurationError(
            f"{env_var} must be >= {minimum}, got {value}",
            details={"env_var": env_var},
        )
    return value


def _get_network(env_var: str) -> NetworkType:
    raw = os.getenv(env_var, NetworkType.LOCAL.value).strip().lower()
    try:
        return NetworkType(raw)
    except ValueError:
        raise ConfigurationError(
            f"{env_var} must be one of {[n.value for n in NetworkType]}, got {raw!r}"
        )


NETWORK = _get_network("SMARTWALLET_NETWORK")

# Hardhat's default chain id; testnet in the deployment config used 97
CHAIN_ID = _get_int("SMARTWALLET_CHAIN_ID", 31337, minimum=1)

# Canonical ERC-4337 v0.6 EntryPoint deployment address
ENTRY_POINT_ADDRESS = os.getenv(
    "SMARTWALLET_ENTRY_POINT", "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
).strip()

ONE_DAY = 24 * 60 * 60
SPEND_LIMIT_PERIOD_SECONDS = _get_int("SMARTWALLET_SPEND_LIMIT_PERIOD", ONE_DAY, minimum=1)
DEFAULT_RECOVERY_CONFIRMATION_TIME = _get_int(
    "SMARTWALLET_RECOVERY_CONFIRMATION_TIME", ONE_DAY
)

LOG_LEVEL = os.getenv("SMARTWALLET_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.getenv("SMARTWALLET_LOG_FILE", "").strip() or None

if NETWORK is NetworkType.MAINNET and DEFAULT_RECOVERY_CONFIRMATION_TIME == 0:
    logger.warning(
        "Recovery confirmation time is zero on mainnet; guardians can take over instantly",
        extra={"event": "config.recovery_delay_zero", "network": NETWORK.value},
    )
