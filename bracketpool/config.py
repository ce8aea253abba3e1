"""
bracketpool/config.py - Local configuration management

Reads user config from a platform-appropriate config directory:
  - macOS/Linux: ~/.bracketpool/config.toml
  - Windows: %APPDATA%\\bracketpool\\config.toml

Example:
    [store]
    path = "~/.bracketpool/competitions.db"

    [scoring]
    points_per_round = 100

    [wallet]
    address = "0x..."
    private_key = "0x..."

    [chain]
    chain_id = 143
    rpc_url = "https://rpc.monad.xyz"
    denomination = "MON"

The custodial seed for paid competitions is read from the
BRACKETPOOL_CUSTODY_SECRET environment variable, never from this file.
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path

from .ledger import DEFAULT_CHAIN_ID, DEFAULT_DENOMINATION, DEFAULT_RPC_URL
from .predictions import DEFAULT_POINTS_PER_ROUND

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "bracketpool"
    return Path.home() / ".bracketpool"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_STORE_PATH = str(CONFIG_DIR / "competitions.db")

CUSTODY_SECRET_ENV = "BRACKETPOOL_CUSTODY_SECRET"


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class WalletConfig:
    """Caller wallet for signing requests."""

    address: str | None = None
    private_key: str | None = None


@dataclass
class ChainConfig:
    """Network used for fee balances and payouts."""

    chain_id: int = DEFAULT_CHAIN_ID
    rpc_url: str = DEFAULT_RPC_URL
    denomination: str = DEFAULT_DENOMINATION


@dataclass
class BracketPoolConfig:
    """Top-level configuration."""

    store_path: str = DEFAULT_STORE_PATH
    points_per_round: int = DEFAULT_POINTS_PER_ROUND
    wallet: WalletConfig | None = None
    chain: ChainConfig | None = None


# ============================================================================
# Parsing
# ============================================================================


def _expand(path: str | None) -> str | None:
    """Expand ~ in a path string."""
    if path is None:
        return None
    if path == ":memory:":
        return path
    return str(Path(path).expanduser())


def load_config(path: Path | None = None) -> BracketPoolConfig:
    """
    Read config from TOML file.

    Args:
        path: Override config file path (default: ~/.bracketpool/config.toml)

    Returns:
        BracketPoolConfig. Missing file or bad TOML returns defaults.
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return BracketPoolConfig()

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return BracketPoolConfig()

    config = BracketPoolConfig()

    # Parse [store] section
    store_data = raw.get("store", {})
    if isinstance(store_data, dict) and store_data.get("path"):
        config.store_path = _expand(store_data["path"])

    # Parse [scoring] section
    scoring_data = raw.get("scoring", {})
    if isinstance(scoring_data, dict):
        points = scoring_data.get("points_per_round", DEFAULT_POINTS_PER_ROUND)
        if isinstance(points, int) and points > 0:
            config.points_per_round = points
        else:
            logger.warning(f"Ignoring invalid points_per_round: {points!r}")

    # Parse [wallet] section
    if "wallet" in raw and isinstance(raw["wallet"], dict):
        wallet_data = raw["wallet"]
        config.wallet = WalletConfig(
            address=wallet_data.get("address"),
            private_key=wallet_data.get("private_key"),
        )

    # Parse [chain] section
    if "chain" in raw and isinstance(raw["chain"], dict):
        chain_data = raw["chain"]
        _defaults = ChainConfig()
        config.chain = ChainConfig(
            chain_id=chain_data.get("chain_id", _defaults.chain_id),
            rpc_url=chain_data.get("rpc_url", _defaults.rpc_url),
            denomination=chain_data.get("denomination", _defaults.denomination),
        )

    return config


def custody_secret() -> str | None:
    """Custodial seed from the environment. None if unset or empty."""
    return os.environ.get(CUSTODY_SECRET_ENV) or None
