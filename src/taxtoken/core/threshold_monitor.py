"""
Threshold Monitor and Reentrancy Guard.

Decides whether the accrued fee balance should be converted and runs the
accrual -> swap -> distribute cycle inside a non-reentrant critical
section. Failing to take the lock is a synchronous no-op, never a wait.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Tuple

from .distribution import DistributionEngine, Payout
from .engine_config import EngineConfig
from .exceptions import InsufficientBalanceError, InvalidAmountError
from .ledger import AccountLedger
from .swap_adapter import SwapAdapter

logger = logging.getLogger(__name__)


class ProcessingLock:
    """Single flag held for the whole swap + distribute span."""

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @contextmanager
    def guard(self) -> Iterator[bool]:
        """
        Yield True if the lock was taken, False if it was already held.

        Only the acquiring frame releases it, including when the block raises.
        """
        if self._held:
            yield False
            return
        self._held = True
        try:
            yield True
        finally:
            self._held = False


class ProcessingStatus(Enum):
    COMPLETED = "completed"
    SKIPPED_LOCKED = "skipped_locked"
    SWAP_FAILED = "swap_failed"
    EMPTY_REGISTRY = "empty_registry"


@dataclass(frozen=True)
class ProcessingResult:
    status: ProcessingStatus
    trigger: str
    amount_in: int = 0
    settlement_received: int = 0
    payouts: Tuple[Payout, ...] = field(default_factory=tuple)
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "trigger": self.trigger,
            "amount_in": self.amount_in,
            "settlement_received": self.settlement_received,
            "payouts": {p.address: p.amount for p in self.payouts},
            "error": self.error,
        }


class ThresholdMonitor:
    def __init__(
        self,
        token_address: str,
        ledger: AccountLedger,
        settlement_ledger: AccountLedger,
        config: EngineConfig,
        adapter: SwapAdapter,
        distributor: DistributionEngine,
        lock: ProcessingLock | None = None,
    ):
        self.token_address = token_address
        self.ledger = ledger
        self.settlement_ledger = settlement_ledger
        self.config = config
        self.adapter = adapter
        self.distributor = distributor
        self.lock = lock or ProcessingLock()

    def accrued_balance(self) -> int:
        return self.ledger.balance_of(self.token_address)

    def effective_threshold(self) -> int:
        """Manual override if set, else ``total_supply // threshold_divisor``."""
        return self.config.threshold.threshold_for(self.ledger.total_supply)

    def should_process(self, transfer_exempt: bool = False) -> bool:
        if self.lock.held:
            return False
        if not self.config.threshold.auto_process_enabled:
            return False
        if transfer_exempt:
            return False
        accrued = self.accrued_balance()
        return accrued > 0 and accrued >= self.effective_threshold()

    def process(self, amount: int | None = None, min_out: int = 0, trigger: str = "auto") -> ProcessingResult:
        """
        Run one conversion cycle.

        ``amount`` defaults to the full accrued balance. Returns a
        ``SKIPPED_LOCKED`` result without side effects when a cycle is
        already in flight.

        Raises:
            SwapFailedError: Conversion failed; balances unchanged.
            EmptyRegistryError: Conversion succeeded but there is nobody to
                pay; proceeds stay in the token's settlement holdings.
        """
        with self.lock.guard() as acquired:
            if not acquired:
                logger.info(
                    "Processing skipped: cycle already in flight",
                    extra={"event": "processing.skipped_locked", "trigger": trigger},
                )
                return ProcessingResult(ProcessingStatus.SKIPPED_LOCKED, trigger)

            accrued = self.accrued_balance()
            if amount is None:
                amount = accrued
            if amount <= 0:
                raise InvalidAmountError("Nothing to process", details={"accrued": accrued})
            if amount > accrued:
                raise InsufficientBalanceError(
                    f"Processing amount exceeds accrued fees ({amount} > {accrued})",
                    details={"amount": amount, "accrued": accrued},
                )

            received = self.adapter.convert(amount, min_out)
            payouts = self.distributor.distribute(received, self.settlement_ledger, self.token_address)

            logger.info(
                "Processed %d accrued tokens into %d settlement",
                amount,
                received,
                extra={
                    "event": "processing.completed",
                    "trigger": trigger,
                    "amount_in": amount,
                    "settlement_received": received,
                },
            )
            return ProcessingResult(
                ProcessingStatus.COMPLETED,
                trigger,
                amount_in=amount,
                settlement_received=received,
                payouts=tuple(payouts),
            )
