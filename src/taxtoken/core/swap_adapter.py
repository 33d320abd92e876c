"""
Swap Adapter.

Converts accrued ledger-asset fees into the settlement asset through the
external router over the two-hop path ``[ledger asset, settlement asset]``.

Ordering:
1. Refuse an unfunded pool before touching any balance.
2. Debit the token's own balance by exactly ``amount`` (delivered to the
   pool) before calling out to the router.
3. Call the router; verify the settlement actually received against
   ``min_out``.

Any failure restores both ledgers to their pre-swap state and surfaces as
``SwapFailedError``.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from typing import Callable, Optional

from .exceptions import ExchangeError, InvalidAmountError, SwapFailedError
from .ledger import AccountLedger, validate_amount
from .logging_config import short_address
from .pool_registry import PoolMigrationManager

logger = logging.getLogger(__name__)


class SwapAdapter:
    def __init__(
        self,
        token_address: str,
        ledger: AccountLedger,
        settlement_ledger: AccountLedger,
        pools: PoolMigrationManager,
        deadline_seconds: int = 300,
        time_provider: Optional[Callable[[], int]] = None,
    ):
        self.token_address = token_address
        self.ledger = ledger
        self.settlement_ledger = settlement_ledger
        self.pools = pools
        self.deadline_seconds = deadline_seconds
        self._time_provider = time_provider or (lambda: int(time.time()))

    def quote(self, amount: int) -> int:
        """Expected settlement output for ``amount``; 0 when the pool cannot quote."""
        if amount <= 0 or not self.pools.pool_is_funded():
            return 0
        try:
            return self.pools.router.get_amounts_out(amount, self.pools.swap_path())[-1]
        except ExchangeError:
            return 0

    def convert(self, amount: int, min_out: int = 0) -> int:
        """
        Swap ``amount`` accrued tokens for settlement.

        Returns:
            Settlement received by the token.

        Raises:
            SwapFailedError: Pool unfunded, router rejected the swap, or the
                output fell short of ``min_out``. Balances are unchanged.
        """
        validate_amount(amount)
        validate_amount(min_out, "min_out")
        if amount == 0:
            raise InvalidAmountError("Cannot convert a zero amount")

        router = self.pools.router
        pool_address = self.pools.pool_address
        path = self.pools.swap_path()

        reserve_token, reserve_settlement = self.pools.reserves()
        if reserve_token == 0 or reserve_settlement == 0:
            raise SwapFailedError(
                "Exchange pool is unfunded",
                details={"pool": pool_address, "reserves": [reserve_token, reserve_settlement]},
            )

        deadline = int(self._time_provider()) + self.deadline_seconds
        settlement_before = self.settlement_ledger.balance_of(self.token_address)

        with ExitStack() as stack:
            stack.enter_context(self.ledger.atomic())
            stack.enter_context(self.settlement_ledger.atomic())

            self.ledger.move(self.token_address, pool_address, amount)
            try:
                router.swap_exact_tokens_for_settlement(
                    amount, min_out, path, self.token_address, deadline
                )
            except ExchangeError as exc:
                logger.warning(
                    "Swap rejected by router: %s",
                    exc,
                    extra={
                        "event": "swap.rejected",
                        "router": short_address(router.address),
                        "amount": amount,
                        "min_out": min_out,
                    },
                )
                raise SwapFailedError(
                    f"Swap failed: {exc.message}",
                    details={"amount": amount, "min_out": min_out, **exc.details},
                ) from exc
            except Exception as exc:
                # any other router failure is still a failed conversion
                logger.error(
                    "Router raised %s during swap: %s",
                    type(exc).__name__,
                    exc,
                    extra={
                        "event": "swap.router_error",
                        "router": short_address(router.address),
                        "amount": amount,
                        "error_type": type(exc).__name__,
                    },
                )
                raise SwapFailedError(
                    f"Swap failed: {type(exc).__name__}: {exc}",
                    details={"amount": amount, "min_out": min_out, "error_type": type(exc).__name__},
                ) from exc

            received = self.settlement_ledger.balance_of(self.token_address) - settlement_before
            if received < min_out:
                raise SwapFailedError(
                    f"Swap output {received} below minimum {min_out}",
                    details={"amount": amount, "min_out": min_out, "received": received},
                )

        logger.info(
            "Converted %d tokens into %d settlement",
            amount,
            received,
            extra={
                "event": "swap.completed",
                "router": short_address(router.address),
                "pool": short_address(pool_address),
                "amount_in": amount,
                "amount_out": received,
            },
        )
        return received
