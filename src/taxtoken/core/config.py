"""
taxtoken Configuration

Deployment defaults are read from environment variables. Values are
validated when loaded; an invalid value raises ConfigurationError rather
than being clamped.

    TAXTOKEN_NETWORK                 testnet | mainnet (default testnet)
    TAXTOKEN_BUY_FEE_BPS             buy-side tax in basis points (500)
    TAXTOKEN_SELL_FEE_BPS            sell-side tax in basis points (500)
    TAXTOKEN_THRESHOLD_DIVISOR       total supply / divisor = threshold (10000)
    TAXTOKEN_COLLECTOR_WEIGHT_TOTAL  required sum of collector weights (100)
    TAXTOKEN_SWAP_DEADLINE_SECONDS   deadline passed to the router (300)
    TAXTOKEN_AUTO_PROCESS            1 to convert fees automatically (1)
    TAXTOKEN_DECIMALS                token decimals (9)
    TAXTOKEN_LOG_LEVEL               logging level (INFO)
    TAXTOKEN_STATE_FILE              CLI state file (./taxtoken_state.json)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


BPS_DENOMINATOR = 10_000
ZERO_ADDRESS = "0x" + "0" * 40
UINT256_MAX = 2**256 - 1

DEFAULT_BUY_FEE_BPS = 500
DEFAULT_SELL_FEE_BPS = 500
DEFAULT_THRESHOLD_DIVISOR = 10_000
DEFAULT_COLLECTOR_WEIGHT_TOTAL = 100
DEFAULT_SWAP_DEADLINE_SECONDS = 300
DEFAULT_DECIMALS = 9


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0,
             maximum: Optional[int] = None) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}", details={"env_var": name}
        ) from exc
    if value < minimum or (maximum is not None and value > maximum):
        raise ConfigurationError(
            f"{name}={value} outside allowed range [{minimum}, {maximum if maximum is not None else 'inf'}]",
            details={"env_var": name, "value": value},
        )
    return value


def _get_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {raw!r}", details={"env_var": name})


@dataclass(frozen=True)
class Settings:
    """Environment-derived deployment defaults."""

    network: NetworkType = NetworkType.TESTNET
    buy_fee_bps: int = DEFAULT_BUY_FEE_BPS
    sell_fee_bps: int = DEFAULT_SELL_FEE_BPS
    threshold_divisor: int = DEFAULT_THRESHOLD_DIVISOR
    collector_weight_total: int = DEFAULT_COLLECTOR_WEIGHT_TOTAL
    swap_deadline_seconds: int = DEFAULT_SWAP_DEADLINE_SECONDS
    auto_process: bool = True
    decimals: int = DEFAULT_DECIMALS
    log_level: str = "INFO"
    state_file: str = "taxtoken_state.json"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    network_raw = env.get("TAXTOKEN_NETWORK", "testnet").strip().lower() or "testnet"
    try:
        network = NetworkType(network_raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"TAXTOKEN_NETWORK must be 'testnet' or 'mainnet', got {network_raw!r}"
        ) from exc

    log_level = env.get("TAXTOKEN_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigurationError(f"TAXTOKEN_LOG_LEVEL has unknown level {log_level!r}")

    settings = Settings(
        network=network,
        buy_fee_bps=_get_int(env, "TAXTOKEN_BUY_FEE_BPS", DEFAULT_BUY_FEE_BPS, 0, BPS_DENOMINATOR),
        sell_fee_bps=_get_int(env, "TAXTOKEN_SELL_FEE_BPS", DEFAULT_SELL_FEE_BPS, 0, BPS_DENOMINATOR),
        threshold_divisor=_get_int(env, "TAXTOKEN_THRESHOLD_DIVISOR", DEFAULT_THRESHOLD_DIVISOR, 1),
        collector_weight_total=_get_int(
            env, "TAXTOKEN_COLLECTOR_WEIGHT_TOTAL", DEFAULT_COLLECTOR_WEIGHT_TOTAL, 1
        ),
        swap_deadline_seconds=_get_int(
            env, "TAXTOKEN_SWAP_DEADLINE_SECONDS", DEFAULT_SWAP_DEADLINE_SECONDS, 1
        ),
        auto_process=_get_flag(env, "TAXTOKEN_AUTO_PROCESS", True),
        decimals=_get_int(env, "TAXTOKEN_DECIMALS", DEFAULT_DECIMALS, 0, 18),
        log_level=log_level,
        state_file=env.get("TAXTOKEN_STATE_FILE", "").strip() or "taxtoken_state.json",
    )

    if settings.network is NetworkType.MAINNET and not settings.auto_process:
        logger.warning(
            "Auto-processing disabled on mainnet; accrued fees require manual processing",
            extra={"event": "config.auto_process_disabled", "network": settings.network.value},
        )
    return settings
