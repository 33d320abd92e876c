"""
Fee Token.

A ledger asset whose transfers pass through a transfer gate:

- transfers to a pool (sells) are taxed at ``sell_fee_bps``
- transfers from a pool (buys) are taxed at ``buy_fee_bps``
- wallet-to-wallet and exempt transfers are not taxed

Tax accrues in the token's own balance. A taxed sell that finds the
accrued balance at or above the threshold converts it into the settlement
asset through the exchange router and pays the proceeds to the weighted
collectors. A failed conversion never fails the sell that triggered it.

All administrative mutations are owner-only and validate completely
before changing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .classification import ClassificationRegistry, TransferKind
from .collectors import CollectorRegistry
from .config import ZERO_ADDRESS
from .distribution import DistributionEngine, Payout
from .engine_config import EngineConfig, FeeConfiguration
from .exceptions import (
    ConfigurationError,
    EmptyRegistryError,
    InsufficientBalanceError,
    ProcessingError,
    SwapFailedError,
    UnauthorizedError,
)
from .ledger import AccountLedger, TokenEvent, normalize_address, validate_address, validate_amount
from .logging_config import short_address
from .metrics import FeeEngineMetrics, get_fee_metrics
from .pool_registry import PoolMigrationManager, PoolRegistry
from .router import ExchangeRouter
from .swap_adapter import SwapAdapter
from .threshold_monitor import (
    ProcessingLock,
    ProcessingResult,
    ProcessingStatus,
    ThresholdMonitor,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    sender: str
    recipient: str
    amount: int
    net_amount: int
    tax: int
    kind: TransferKind
    processing: Optional[ProcessingResult] = None


class FeeToken:
    """
    Transfer-taxed token with threshold-triggered fee conversion.

    Args:
        name: Token name
        symbol: Token symbol
        owner: Administrator address; receives the initial supply
        initial_supply: Supply in base units, issued once to ``owner``
        router: External exchange router
        settlement_ledger: Ledger of the settlement asset
        config: Engine configuration (defaults from environment)
        collectors: Initial collector addresses
        weights: Initial collector weights
        decimals: Token decimals
        address: Token address (derived when empty)
        metrics: Metrics sink (process singleton when omitted)
        time_provider: Clock used for swap deadlines
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        owner: str,
        initial_supply: int,
        router: ExchangeRouter,
        settlement_ledger: AccountLedger,
        config: EngineConfig | None = None,
        collectors: Sequence[str] = (),
        weights: Sequence[int] = (),
        decimals: int = 9,
        address: str = "",
        metrics: FeeEngineMetrics | None = None,
        time_provider: Callable[[], int] | None = None,
    ):
        if not name:
            raise ConfigurationError("Token name cannot be empty")
        if not symbol:
            raise ConfigurationError("Token symbol cannot be empty")
        validate_amount(initial_supply, "initial_supply")

        self.name = name
        self.owner = validate_address(owner, "owner")
        self.config = config or EngineConfig.from_env()
        self.ledger = AccountLedger(symbol=symbol, decimals=decimals, address=address)
        self.settlement_ledger = settlement_ledger
        self.classification = ClassificationRegistry()
        self.collectors = CollectorRegistry(weight_total=self.config.collector_weight_total)
        if collectors or weights:
            self.collectors.replace(collectors, weights)

        if initial_supply:
            self.ledger.issue(self.owner, initial_supply)

        # the token itself and the deployer never pay tax
        self.classification.set_exempt(self.address, True)
        self.classification.set_exempt(self.owner, True)

        self._wire(router, metrics, time_provider)
        self.classification.set_pool(self.pools.pool_address, True)

        logger.info(
            "FeeToken deployed",
            extra={
                "event": "token.deployed",
                "token": self.symbol,
                "address": self.address,
                "owner": short_address(self.owner),
                "initial_supply": initial_supply,
                "pool": short_address(self.pools.pool_address),
            },
        )

    def _wire(
        self,
        router: ExchangeRouter,
        metrics: FeeEngineMetrics | None,
        time_provider: Callable[[], int] | None,
    ) -> None:
        self.metrics = metrics or get_fee_metrics()
        self.pools = PoolMigrationManager(self.address, router)
        self.adapter = SwapAdapter(
            self.address,
            self.ledger,
            self.settlement_ledger,
            self.pools,
            deadline_seconds=self.config.swap_deadline_seconds,
            time_provider=time_provider,
        )
        self.distributor = DistributionEngine(self.collectors)
        self.monitor = ThresholdMonitor(
            self.address,
            self.ledger,
            self.settlement_ledger,
            self.config,
            self.adapter,
            self.distributor,
            lock=ProcessingLock(),
        )

    # ==================== View Functions ====================

    @property
    def address(self) -> str:
        return self.ledger.address

    @property
    def symbol(self) -> str:
        return self.ledger.symbol

    @property
    def decimals(self) -> int:
        return self.ledger.decimals

    @property
    def total_supply(self) -> int:
        return self.ledger.total_supply

    @property
    def events(self) -> List[TokenEvent]:
        return self.ledger.events

    @property
    def router(self) -> ExchangeRouter:
        return self.pools.router

    @property
    def pool_address(self) -> str:
        return self.pools.pool_address

    @property
    def processing(self) -> bool:
        return self.monitor.lock.held

    def balance_of(self, account: str) -> int:
        return self.ledger.balance_of(account)

    def accrued_fees(self) -> int:
        """Fees held by the token and not yet converted."""
        return self.ledger.balance_of(self.address)

    def settlement_holdings(self) -> int:
        return self.settlement_ledger.balance_of(self.address)

    def effective_threshold(self) -> int:
        return self.monitor.effective_threshold()

    def is_exempt(self, account: str) -> bool:
        return self.classification.is_exempt(account)

    def is_pool(self, account: str) -> bool:
        return self.classification.is_pool(account)

    def pool_is_funded(self) -> bool:
        return self.pools.pool_is_funded()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the fee pipeline state for operators."""
        accrued = self.accrued_fees()
        threshold = self.effective_threshold()
        reserve_token, reserve_settlement = self.pools.reserves()
        return {
            "token": self.symbol,
            "address": self.address,
            "owner": self.owner,
            "total_supply": self.total_supply,
            "accrued_fees": accrued,
            "threshold": threshold,
            "threshold_progress_pct": round(accrued * 100 / threshold, 2) if threshold else 100.0,
            "threshold_reached": accrued >= threshold,
            "auto_process_enabled": self.config.threshold.auto_process_enabled,
            "manual_override_amount": self.config.threshold.manual_override_amount,
            "buy_fee_bps": self.config.fees.buy_fee_bps,
            "sell_fee_bps": self.config.fees.sell_fee_bps,
            "router": self.pools.registry.router_address,
            "pool": self.pools.pool_address,
            "pool_reserves": [reserve_token, reserve_settlement],
            "pool_funded": reserve_token > 0 and reserve_settlement > 0,
            "conversion_quote": self.adapter.quote(accrued),
            "settlement_asset": self.pools.registry.settlement_asset_address,
            "settlement_holdings": self.settlement_holdings(),
            "collectors": [
                {"address": c.address, "share_weight": c.share_weight} for c in self.collectors.collectors
            ],
            "exempt": self.classification.exempt_addresses(),
            "pools": self.classification.pool_addresses(),
        }

    # ==================== Transfer Gate ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferReceipt:
        """
        Transfer ``amount`` from ``sender`` to ``recipient`` through the gate.

        Raises:
            InsufficientBalanceError: Sender holds less than ``amount``.
                Nothing is mutated.
        """
        sender_norm = validate_address(sender, "sender")
        recipient_norm = validate_address(recipient, "recipient")
        validate_amount(amount)

        sender_balance = self.ledger.balance_of(sender_norm)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"account": sender_norm, "balance": sender_balance, "amount": amount},
            )

        kind = self.classification.classify_transfer(sender_norm, recipient_norm)
        fees = self.config.fees
        if kind is TransferKind.SELL:
            tax = FeeConfiguration.tax_on(amount, fees.sell_fee_bps)
        elif kind is TransferKind.BUY:
            tax = FeeConfiguration.tax_on(amount, fees.buy_fee_bps)
        else:
            tax = 0
        net_amount = amount - tax

        with self.ledger.atomic():
            self.ledger.move(sender_norm, recipient_norm, net_amount)
            if tax:
                self.ledger.move(sender_norm, self.address, tax)
                self.ledger.record("FeesAccrued", sender_norm, self.address, tax, side=kind.value)

        if kind in (TransferKind.BUY, TransferKind.SELL):
            self.metrics.record_tax(self.symbol, kind.value, tax)
            self.metrics.accrued_balance.labels(token=self.symbol).set(self.accrued_fees())
            logger.debug(
                "Taxed %s of %d: tax=%d net=%d",
                kind.value,
                amount,
                tax,
                net_amount,
                extra={
                    "event": "token.taxed_transfer",
                    "kind": kind.value,
                    "from": short_address(sender_norm),
                    "to": short_address(recipient_norm),
                    "tax": tax,
                },
            )

        # only pool-bound transfers consult the monitor; exempt ones are refused there
        processing = None
        if self.classification.is_pool(recipient_norm) and self.monitor.should_process(
            transfer_exempt=kind is TransferKind.EXEMPT
        ):
            processing = self._auto_process()

        return TransferReceipt(
            sender=sender_norm,
            recipient=recipient_norm,
            amount=amount,
            net_amount=net_amount,
            tax=tax,
            kind=kind,
            processing=processing,
        )

    def _auto_process(self) -> ProcessingResult:
        """Run a threshold-triggered cycle; failures are contained here."""
        try:
            result = self.monitor.process(trigger="auto")
        except SwapFailedError as exc:
            logger.warning(
                "Automatic fee processing failed, fees stay accrued: %s",
                exc,
                extra={"event": "processing.swap_failed", "token": self.symbol, "accrued": self.accrued_fees()},
            )
            self.ledger.record("SwapFailed", self.address, self.pool_address, self.accrued_fees(), reason=exc.message)
            result = ProcessingResult(ProcessingStatus.SWAP_FAILED, "auto", error=exc.message)
        except EmptyRegistryError as exc:
            logger.warning(
                "Fees converted but no collectors registered; proceeds retained",
                extra={
                    "event": "processing.empty_registry",
                    "token": self.symbol,
                    "settlement_holdings": self.settlement_holdings(),
                },
            )
            result = ProcessingResult(ProcessingStatus.EMPTY_REGISTRY, "auto", error=exc.message)
        self._record_cycle(result)
        return result

    def _record_cycle(self, result: ProcessingResult) -> None:
        self.metrics.record_cycle(self.symbol, result.trigger, result.status.value)
        self.metrics.accrued_balance.labels(token=self.symbol).set(self.accrued_fees())
        if result.status is ProcessingStatus.COMPLETED:
            self.metrics.tokens_converted.labels(token=self.symbol).inc(result.amount_in)
            self.metrics.settlement_distributed.labels(
                token=self.symbol, asset=self.settlement_ledger.symbol
            ).inc(result.settlement_received)
            self.ledger.record(
                "FeesProcessed",
                self.address,
                self.pool_address,
                result.amount_in,
                trigger=result.trigger,
                settlement_received=result.settlement_received,
            )

    # ==================== Admin Functions ====================

    def set_fees(self, caller: str, buy_fee_bps: int, sell_fee_bps: int) -> None:
        self._require_owner(caller)
        self.config.fees = FeeConfiguration(buy_fee_bps, sell_fee_bps)
        logger.info(
            "Fees updated",
            extra={"event": "admin.fees_updated", "buy_fee_bps": buy_fee_bps, "sell_fee_bps": sell_fee_bps},
        )

    def set_exempt(self, caller: str, account: str, exempt: bool) -> None:
        self._require_owner(caller)
        self.classification.set_exempt(account, exempt)

    def set_pool(self, caller: str, account: str, is_pool: bool) -> None:
        self._require_owner(caller)
        self.classification.set_pool(account, is_pool)

    def set_auto_process(self, caller: str, enabled: bool) -> None:
        self._require_owner(caller)
        self.config.threshold = self.config.with_threshold(auto_process_enabled=bool(enabled))
        logger.info("Auto-processing %s", "enabled" if enabled else "disabled",
                    extra={"event": "admin.auto_process", "enabled": bool(enabled)})

    def set_threshold_override(self, caller: str, amount: Optional[int]) -> None:
        """Pin the processing threshold; ``None`` or 0 falls back to the supply-derived one."""
        self._require_owner(caller)
        self.config.threshold = self.config.with_threshold(manual_override_amount=amount or None)
        logger.info(
            "Threshold override set",
            extra={"event": "admin.threshold_override", "amount": amount or None},
        )

    def set_collectors(self, caller: str, addresses: Sequence[str], weights: Sequence[int]) -> None:
        self._require_owner(caller)
        self.collectors.replace(addresses, weights)

    def migrate_router(self, caller: str, new_router: ExchangeRouter) -> PoolRegistry:
        """
        Switch routers and classify the new pool.

        The previous pool keeps its classification; clear it with
        ``set_pool(caller, old_pool, False)`` when legacy liquidity should
        stop being taxed.

        Returns:
            The previous pool registry.
        """
        self._require_owner(caller)
        previous = self.pools.migrate(new_router)
        self.classification.set_pool(self.pools.pool_address, True)
        self.ledger.record(
            "RouterMigrated",
            previous.router_address,
            self.pools.registry.router_address,
            0,
            old_pool=previous.pool_address,
            new_pool=self.pools.pool_address,
        )
        return previous

    def process_fees(self, caller: str, amount: int, min_out: int = 0) -> ProcessingResult:
        """
        Operator-forced conversion of ``amount`` accrued tokens.

        Raises:
            SwapFailedError: Conversion failed; balances unchanged.
            EmptyRegistryError: Proceeds retained in settlement holdings.
            InsufficientBalanceError: ``amount`` exceeds the accrued fees.
        """
        self._require_owner(caller)
        validate_amount(amount)
        validate_amount(min_out, "min_out")
        try:
            result = self.monitor.process(amount=amount, min_out=min_out, trigger="manual")
        except ProcessingError as exc:
            status = (
                ProcessingStatus.SWAP_FAILED if isinstance(exc, SwapFailedError)
                else ProcessingStatus.EMPTY_REGISTRY
            )
            self._record_cycle(ProcessingResult(status, "manual", error=exc.message))
            raise
        self._record_cycle(result)
        return result

    def distribute_fees(self, caller: str, amount: int, in_token: bool = True) -> List[Payout]:
        """
        Pay ``amount`` straight to the collectors.

        With ``in_token`` the accrued ledger-asset balance is paid out
        unconverted; otherwise the settlement holdings are used.
        """
        self._require_owner(caller)
        source_ledger = self.ledger if in_token else self.settlement_ledger
        payouts = self.distributor.distribute(amount, source_ledger, self.address)
        self.metrics.settlement_distributed.labels(token=self.symbol, asset=source_ledger.symbol).inc(amount)
        self.ledger.record(
            "FeesDistributed", self.address, ZERO_ADDRESS, amount, asset=source_ledger.symbol
        )
        return payouts

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._require_owner(caller)
        new_owner_norm = validate_address(new_owner, "new owner")
        previous = self.owner
        self.owner = new_owner_norm
        logger.warning(
            "Ownership transferred",
            extra={
                "event": "admin.ownership_transferred",
                "old_owner": short_address(previous),
                "new_owner": short_address(new_owner_norm),
            },
        )

    # ==================== Helpers ====================

    def _require_owner(self, caller: str) -> None:
        if normalize_address(caller) != self.owner:
            raise UnauthorizedError(
                f"{self.symbol}: caller is not owner", details={"caller": normalize_address(caller)}
            )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "owner": self.owner,
            "ledger": self.ledger.to_dict(include_events=True),
            "config": self.config.to_dict(),
            "classification": self.classification.to_dict(),
            "collectors": self.collectors.to_dict(),
            "pool": self.pools.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        router: ExchangeRouter,
        settlement_ledger: AccountLedger,
        metrics: FeeEngineMetrics | None = None,
        time_provider: Callable[[], int] | None = None,
    ) -> "FeeToken":
        """Restore a token saved with ``to_dict`` against a live router."""
        mismatch = PoolMigrationManager.check_snapshot(data.get("pool", {}), router)
        if mismatch:
            raise ConfigurationError(mismatch)

        token = cls.__new__(cls)
        token.name = data["name"]
        token.owner = normalize_address(data["owner"])
        token.config = EngineConfig.from_dict(data.get("config", {}))
        token.ledger = AccountLedger.from_dict(data["ledger"])
        token.settlement_ledger = settlement_ledger
        token.classification = ClassificationRegistry.from_dict(data.get("classification", {}))
        token.collectors = CollectorRegistry.from_dict(data.get("collectors", {}))
        token._wire(router, metrics, time_provider)
        return token
