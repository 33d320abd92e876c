"""
Deployment snapshots.

A deployment is one fee token, the settlement ledger it converts into, and
every in-memory router it has used (a migrated-away router keeps its pools
and liquidity). Snapshots are plain JSON written atomically.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from taxtoken.exchange.memory_router import ConstantProductRouter

from .exceptions import ConfigurationError
from .fee_token import FeeToken
from .ledger import AccountLedger, normalize_address
from .metrics import FeeEngineMetrics

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class Deployment:
    token: FeeToken
    settlement_ledger: AccountLedger
    routers: Dict[str, ConstantProductRouter] = field(default_factory=dict)

    @property
    def router(self) -> ConstantProductRouter:
        """The router the token is currently bound to."""
        return self.routers[normalize_address(self.token.router.address)]

    def add_router(self, router: ConstantProductRouter) -> None:
        self.routers[router.address] = router

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "settlement": self.settlement_ledger.to_dict(),
            "routers": [router.to_dict() for router in self.routers.values()],
            "active_router": self.token.router.address,
            "token": self.token.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        metrics: FeeEngineMetrics | None = None,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> "Deployment":
        if data.get("version") != STATE_VERSION:
            raise ConfigurationError(
                "Unsupported state version", details={"version": data.get("version")}
            )
        settlement_ledger = AccountLedger.from_dict(data["settlement"])
        routers = {}
        for entry in data.get("routers", []):
            router = ConstantProductRouter.from_dict(entry, settlement_ledger, time_provider=time_provider)
            routers[router.address] = router

        active = normalize_address(data.get("active_router", ""))
        if active not in routers:
            raise ConfigurationError("Active router missing from state", details={"router": active})

        token = FeeToken.from_dict(
            data["token"], routers[active], settlement_ledger, metrics=metrics, time_provider=time_provider
        )
        for router in routers.values():
            if any(pair.token_address == token.address for pair in router.pairs.values()):
                router.bind_token(token)
        return cls(token=token, settlement_ledger=settlement_ledger, routers=routers)


def save_state(path: str, deployment: Deployment) -> None:
    """Persist ``deployment`` to ``path`` atomically."""
    payload = deployment.to_dict()
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise ConfigurationError(f"Failed to write state file {path}: {exc}") from exc
    logger.info("State saved", extra={"event": "state.saved", "path": path})


def load_state(
    path: str,
    metrics: FeeEngineMetrics | None = None,
    time_provider: Optional[Callable[[], int]] = None,
) -> Deployment:
    """Load a deployment saved with ``save_state``."""
    if not os.path.exists(path):
        raise ConfigurationError(f"State file not found: {path}", details={"path": path})
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to read state file {path}: {exc}") from exc
    deployment = Deployment.from_dict(data, metrics=metrics, time_provider=time_provider)
    logger.debug("State loaded", extra={"event": "state.loaded", "path": path})
    return deployment
