"""
Pool Registry and Router Migration.

Holds the current router and the pool address derived from
(router, ledger asset, settlement asset). Migrating the router swaps the
whole registry in one step; the previous pool keeps whatever
classification it had until an administrator clears it explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import AdministrationError
from .ledger import derive_address, normalize_address, validate_address
from .logging_config import short_address
from .router import ExchangeRouter

logger = logging.getLogger(__name__)


def compute_pool_address(router_address: str, token_a: str, token_b: str) -> str:
    """
    Deterministic pool address for a token pair on a router.

    Token order does not matter, so the router and the token agree on the
    address without asking each other.
    """
    first, second = sorted([normalize_address(token_a), normalize_address(token_b)])
    return derive_address("pool", normalize_address(router_address), first, second)


@dataclass(frozen=True)
class PoolRegistry:
    router_address: str
    settlement_asset_address: str
    pool_address: str

    @classmethod
    def derive(cls, router_address: str, ledger_asset: str, settlement_asset: str) -> "PoolRegistry":
        router_norm = validate_address(router_address, "router")
        settlement_norm = validate_address(settlement_asset, "settlement asset")
        return cls(
            router_address=router_norm,
            settlement_asset_address=settlement_norm,
            pool_address=compute_pool_address(router_norm, ledger_asset, settlement_norm),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "router_address": self.router_address,
            "settlement_asset_address": self.settlement_asset_address,
            "pool_address": self.pool_address,
        }


class PoolMigrationManager:
    """
    Owns the live router object and its derived ``PoolRegistry``.

    ``registry.pool_address`` is always consistent with the current router.
    """

    def __init__(self, ledger_asset: str, router: ExchangeRouter):
        self.ledger_asset = normalize_address(ledger_asset)
        self._router = router
        self._registry = PoolRegistry.derive(
            router.address, self.ledger_asset, router.settlement_asset_address
        )

    @property
    def router(self) -> ExchangeRouter:
        return self._router

    @property
    def registry(self) -> PoolRegistry:
        return self._registry

    @property
    def pool_address(self) -> str:
        return self._registry.pool_address

    def swap_path(self) -> list[str]:
        return [self.ledger_asset, self._registry.settlement_asset_address]

    def migrate(self, new_router: ExchangeRouter) -> PoolRegistry:
        """
        Switch to ``new_router``.

        Returns:
            The previous registry.
        """
        if not isinstance(new_router, ExchangeRouter):
            raise AdministrationError("New router does not implement the exchange router interface")

        new_registry = PoolRegistry.derive(
            new_router.address, self.ledger_asset, new_router.settlement_asset_address
        )
        if new_registry == self._registry:
            raise AdministrationError(
                "Router is already active", details={"router": new_registry.router_address}
            )

        previous = self._registry
        self._router = new_router
        self._registry = new_registry
        logger.info(
            "Router migrated",
            extra={
                "event": "pool.router_migrated",
                "old_router": short_address(previous.router_address),
                "new_router": short_address(new_registry.router_address),
                "old_pool": short_address(previous.pool_address),
                "new_pool": short_address(new_registry.pool_address),
            },
        )
        return previous

    def reserves(self) -> tuple[int, int]:
        """(ledger asset reserve, settlement reserve) of the current pool."""
        return self._router.get_reserves(self.ledger_asset, self._registry.settlement_asset_address)

    def pool_is_funded(self) -> bool:
        reserve_token, reserve_settlement = self.reserves()
        return reserve_token > 0 and reserve_settlement > 0

    def to_dict(self) -> Dict[str, Any]:
        return {"ledger_asset": self.ledger_asset, **self._registry.to_dict()}

    @staticmethod
    def check_snapshot(data: Dict[str, Any], router: ExchangeRouter) -> Optional[str]:
        """Return an error message if ``router`` does not match a saved registry."""
        saved_router = normalize_address(data.get("router_address", ""))
        if saved_router and saved_router != normalize_address(router.address):
            return f"saved router {saved_router} does not match supplied router {router.address}"
        return None
