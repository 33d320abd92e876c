"""
Distribution Engine.

Apportions an amount across the collector registry by weight:

    payout_i = floor(amount * weight_i / total_weight)

The rounding remainder (at most ``total_weight - 1`` units) goes to the
last collector in registry order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from .collectors import Collector, CollectorRegistry
from .exceptions import EmptyRegistryError, InsufficientBalanceError
from .ledger import AccountLedger, validate_amount
from .logging_config import short_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Payout:
    address: str
    amount: int


def allocate(amount: int, collectors: Sequence[Collector]) -> List[Payout]:
    """Split ``amount`` over ``collectors``; the last one absorbs the remainder."""
    validate_amount(amount)
    if not collectors:
        raise EmptyRegistryError("No collectors registered", details={"amount": amount})

    total_weight = sum(c.share_weight for c in collectors)
    payouts = [Payout(c.address, amount * c.share_weight // total_weight) for c in collectors]
    remainder = amount - sum(p.amount for p in payouts)
    if remainder:
        last = payouts[-1]
        payouts[-1] = Payout(last.address, last.amount + remainder)
    return payouts


class DistributionEngine:
    def __init__(self, registry: CollectorRegistry):
        self.registry = registry

    def distribute(self, amount: int, ledger: AccountLedger, source: str) -> List[Payout]:
        """
        Pay ``amount`` of ``ledger``'s asset from ``source`` to the collectors.

        The registry is read once at entry. All payouts land or none do.

        Raises:
            EmptyRegistryError: No collectors; nothing is moved.
            InsufficientBalanceError: ``source`` holds less than ``amount``.
        """
        collectors = self.registry.snapshot()
        payouts = allocate(amount, collectors)

        available = ledger.balance_of(source)
        if available < amount:
            raise InsufficientBalanceError(
                f"{ledger.symbol}: distribution amount exceeds balance ({amount} > {available})",
                details={"account": source, "balance": available, "amount": amount},
            )

        with ledger.atomic():
            for payout in payouts:
                if payout.amount:
                    ledger.move(source, payout.address, payout.amount)

        logger.info(
            "Distributed %d %s to %d collectors",
            amount,
            ledger.symbol,
            len(payouts),
            extra={
                "event": "distribution.completed",
                "asset": ledger.symbol,
                "amount": amount,
                "payouts": {short_address(p.address): p.amount for p in payouts},
            },
        )
        return payouts
