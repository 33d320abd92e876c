"""
In-memory constant-product router.

AMM pools (x * y = k) pairing a fee token with the settlement asset, with
integer arithmetic and a 0.3% LP fee. Implements the ``ExchangeRouter``
interface the fee engine consumes, plus trader-facing buy/sell that route
the token leg through the token's transfer gate so transfer tax applies.

Swaps read the deposited input as ``pool balance - stored reserve``, so
fee-on-transfer deposits are credited at their net amount.
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple

from taxtoken.core.config import BPS_DENOMINATOR
from taxtoken.core.exceptions import ExchangeError
from taxtoken.core.ledger import (
    AccountLedger,
    derive_address,
    normalize_address,
    validate_address,
    validate_amount,
)
from taxtoken.core.logging_config import short_address
from taxtoken.core.pool_registry import compute_pool_address

logger = logging.getLogger(__name__)

DEFAULT_LP_FEE_BPS = 30


@dataclass
class PairState:
    """Reserves and LP accounting of one token/settlement pool."""

    token_address: str
    settlement_address: str
    pool_address: str
    reserve_token: int = 0
    reserve_settlement: int = 0
    lp_supply: int = 0
    providers: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "settlement_address": self.settlement_address,
            "pool_address": self.pool_address,
            "reserve_token": self.reserve_token,
            "reserve_settlement": self.reserve_settlement,
            "lp_supply": self.lp_supply,
            "providers": dict(self.providers),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PairState":
        return cls(
            token_address=data["token_address"],
            settlement_address=data["settlement_address"],
            pool_address=data["pool_address"],
            reserve_token=int(data.get("reserve_token", 0)),
            reserve_settlement=int(data.get("reserve_settlement", 0)),
            lp_supply=int(data.get("lp_supply", 0)),
            providers={k: int(v) for k, v in data.get("providers", {}).items()},
        )


class ConstantProductRouter:
    """
    Router over constant-product pools settled in one settlement ledger.

    Tokens are bound with ``create_pair``; a bound token must expose
    ``address``, ``ledger``, ``balance_of`` and ``transfer``.
    """

    def __init__(
        self,
        settlement_ledger: AccountLedger,
        address: str = "",
        fee_bps: int = DEFAULT_LP_FEE_BPS,
        time_provider: Optional[Callable[[], int]] = None,
    ):
        if not 0 <= fee_bps < BPS_DENOMINATOR:
            raise ExchangeError("LP fee must be below 100%", details={"fee_bps": fee_bps})
        self.settlement_ledger = settlement_ledger
        self._address = normalize_address(address) or derive_address(
            "router", settlement_ledger.address, str(time.time_ns())
        )
        self.fee_bps = fee_bps
        self._time_provider = time_provider or (lambda: int(time.time()))
        self.pairs: Dict[str, PairState] = {}
        self._tokens: Dict[str, Any] = {}

    # ==================== ExchangeRouter ====================

    @property
    def address(self) -> str:
        return self._address

    @property
    def settlement_asset_address(self) -> str:
        return self.settlement_ledger.address

    def get_reserves(self, token_a: str, token_b: str) -> Tuple[int, int]:
        pair = self.pairs.get(compute_pool_address(self._address, token_a, token_b))
        if pair is None:
            return 0, 0
        if normalize_address(token_a) == pair.token_address:
            return pair.reserve_token, pair.reserve_settlement
        return pair.reserve_settlement, pair.reserve_token

    def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> list[int]:
        validate_amount(amount_in)
        if len(path) != 2:
            raise ExchangeError("Only two-hop paths are supported", details={"path": list(path)})
        reserve_in, reserve_out = self.get_reserves(path[0], path[1])
        return [amount_in, self._amount_out(amount_in, reserve_in, reserve_out)]

    def swap_exact_tokens_for_settlement(
        self,
        amount_in: int,
        min_out: int,
        path: Sequence[str],
        recipient: str,
        deadline: int,
    ) -> int:
        """Swap ``amount_in`` tokens already delivered to the pool."""
        self._check_deadline(deadline)
        pair = self._pair_for_path(path)
        recipient_norm = validate_address(recipient, "recipient")

        token = self._tokens[pair.token_address]
        delivered = token.balance_of(pair.pool_address) - pair.reserve_token
        if delivered < amount_in:
            raise ExchangeError(
                "Input amount was not delivered to the pool",
                details={"amount_in": amount_in, "delivered": delivered},
            )

        amount_out = self._amount_out(amount_in, pair.reserve_token, pair.reserve_settlement)
        if amount_out < min_out:
            raise ExchangeError(
                "Insufficient output amount",
                details={"amount_out": amount_out, "min_out": min_out},
            )

        self.settlement_ledger.move(pair.pool_address, recipient_norm, amount_out)
        pair.reserve_token += amount_in
        pair.reserve_settlement -= amount_out

        logger.info(
            "Router swap %d -> %d",
            amount_in,
            amount_out,
            extra={
                "event": "router.swap",
                "pool": short_address(pair.pool_address),
                "recipient": short_address(recipient_norm),
                "amount_in": amount_in,
                "amount_out": amount_out,
            },
        )
        return amount_out

    # ==================== Pool Management ====================

    def create_pair(self, token: Any) -> PairState:
        """Bind ``token`` and open its pool against the settlement asset."""
        pool_address = compute_pool_address(self._address, token.address, self.settlement_asset_address)
        self._tokens[normalize_address(token.address)] = token
        if pool_address not in self.pairs:
            self.pairs[pool_address] = PairState(
                token_address=normalize_address(token.address),
                settlement_address=self.settlement_asset_address,
                pool_address=pool_address,
            )
            logger.info(
                "Pair created",
                extra={"event": "router.pair_created", "pool": short_address(pool_address)},
            )
        return self.pairs[pool_address]

    def bind_token(self, token: Any) -> None:
        """Re-attach a token object to an existing pair after loading state."""
        token_address = normalize_address(token.address)
        if not any(pair.token_address == token_address for pair in self.pairs.values()):
            raise ExchangeError("No pair exists for token", details={"token": token_address})
        self._tokens[token_address] = token

    def add_liquidity(self, provider: str, token_address: str, token_amount: int,
                      settlement_amount: int) -> Dict[str, Any]:
        """
        Deposit both assets and mint LP shares.

        The first deposit sets the price; later deposits mint shares in
        proportion to the smaller side of the contribution.
        """
        provider_norm = validate_address(provider, "provider")
        validate_amount(token_amount, "token_amount")
        validate_amount(settlement_amount, "settlement_amount")
        if token_amount == 0 or settlement_amount == 0:
            raise ExchangeError("Liquidity amounts must be positive")

        pair = self._pair_for_token(token_address)
        token = self._tokens[pair.token_address]

        with self._all_or_nothing(pair, token):
            token.transfer(provider_norm, pair.pool_address, token_amount)
            self.settlement_ledger.move(provider_norm, pair.pool_address, settlement_amount)
            token_in = token.balance_of(pair.pool_address) - pair.reserve_token
            settlement_in = self.settlement_ledger.balance_of(pair.pool_address) - pair.reserve_settlement

            if pair.lp_supply == 0:
                minted = math.isqrt(token_in * settlement_in)
            else:
                minted = min(
                    token_in * pair.lp_supply // pair.reserve_token,
                    settlement_in * pair.lp_supply // pair.reserve_settlement,
                )
            if minted == 0:
                raise ExchangeError("Insufficient liquidity minted")

            pair.lp_supply += minted
            pair.providers[provider_norm] = pair.providers.get(provider_norm, 0) + minted
            pair.reserve_token += token_in
            pair.reserve_settlement += settlement_in

        logger.info(
            "Liquidity added",
            extra={
                "event": "router.liquidity_added",
                "pool": short_address(pair.pool_address),
                "provider": short_address(provider_norm),
                "token_in": token_in,
                "settlement_in": settlement_in,
                "lp_minted": minted,
            },
        )
        return {
            "success": True,
            "token_deposited": token_in,
            "settlement_deposited": settlement_in,
            "lp_tokens": minted,
            "reserves": [pair.reserve_token, pair.reserve_settlement],
        }

    def sync(self, token_address: str) -> PairState:
        """Force stored reserves to match the pool's actual balances."""
        pair = self._pair_for_token(token_address)
        token = self._tokens[pair.token_address]
        pair.reserve_token = token.balance_of(pair.pool_address)
        pair.reserve_settlement = self.settlement_ledger.balance_of(pair.pool_address)
        return pair

    # ==================== Trader Swaps ====================

    def swap_exact_tokens_for_settlement_from(self, trader: str, token_address: str, amount: int,
                                              min_out: int = 0, deadline: Optional[int] = None) -> Dict[str, Any]:
        """
        Sell ``amount`` tokens for settlement, fee-on-transfer aware.

        The token leg passes through the transfer gate, so sell tax is
        taken and a fee processing cycle may run before the trader's
        own swap executes against the updated reserves.
        """
        trader_norm = validate_address(trader, "trader")
        validate_amount(amount)
        validate_amount(min_out, "min_out")
        self._check_deadline(deadline)
        pair = self._pair_for_token(token_address)
        token = self._tokens[pair.token_address]

        with self._all_or_nothing(pair, token):
            receipt = token.transfer(trader_norm, pair.pool_address, amount)
            amount_in = token.balance_of(pair.pool_address) - pair.reserve_token
            amount_out = self._amount_out(amount_in, pair.reserve_token, pair.reserve_settlement)
            if amount_out < min_out:
                raise ExchangeError(
                    "Insufficient output amount",
                    details={"amount_out": amount_out, "min_out": min_out},
                )
            self.settlement_ledger.move(pair.pool_address, trader_norm, amount_out)
            pair.reserve_token += amount_in
            pair.reserve_settlement -= amount_out

        logger.info(
            "Trader sell",
            extra={
                "event": "router.sell",
                "trader": short_address(trader_norm),
                "amount": amount,
                "tax": receipt.tax,
                "amount_out": amount_out,
            },
        )
        return {
            "success": True,
            "input": amount,
            "tax": receipt.tax,
            "pool_input": amount_in,
            "output": amount_out,
            "processing": receipt.processing.to_dict() if receipt.processing else None,
        }

    def swap_exact_settlement_for_tokens(self, trader: str, token_address: str, settlement_amount: int,
                                         min_out: int = 0, deadline: Optional[int] = None) -> Dict[str, Any]:
        """
        Buy tokens with ``settlement_amount``; ``min_out`` bounds the
        amount the trader receives after buy tax.
        """
        trader_norm = validate_address(trader, "trader")
        validate_amount(settlement_amount, "settlement_amount")
        validate_amount(min_out, "min_out")
        self._check_deadline(deadline)
        pair = self._pair_for_token(token_address)
        token = self._tokens[pair.token_address]

        with self._all_or_nothing(pair, token):
            self.settlement_ledger.move(trader_norm, pair.pool_address, settlement_amount)
            amount_out = self._amount_out(settlement_amount, pair.reserve_settlement, pair.reserve_token)
            if amount_out == 0:
                raise ExchangeError("Insufficient output amount", details={"amount_out": 0})
            receipt = token.transfer(pair.pool_address, trader_norm, amount_out)
            if receipt.net_amount < min_out:
                raise ExchangeError(
                    "Insufficient output amount",
                    details={"received": receipt.net_amount, "min_out": min_out},
                )
            pair.reserve_settlement += settlement_amount
            pair.reserve_token -= amount_out

        logger.info(
            "Trader buy",
            extra={
                "event": "router.buy",
                "trader": short_address(trader_norm),
                "settlement_in": settlement_amount,
                "tax": receipt.tax,
                "received": receipt.net_amount,
            },
        )
        return {
            "success": True,
            "input": settlement_amount,
            "pool_output": amount_out,
            "tax": receipt.tax,
            "output": receipt.net_amount,
        }

    # ==================== Helpers ====================

    def _amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        if amount_in == 0:
            raise ExchangeError("Insufficient input amount")
        if reserve_in == 0 or reserve_out == 0:
            raise ExchangeError(
                "Insufficient liquidity", details={"reserves": [reserve_in, reserve_out]}
            )
        amount_in_with_fee = amount_in * (BPS_DENOMINATOR - self.fee_bps)
        return amount_in_with_fee * reserve_out // (reserve_in * BPS_DENOMINATOR + amount_in_with_fee)

    def _check_deadline(self, deadline: Optional[int]) -> None:
        if deadline is not None and int(self._time_provider()) > deadline:
            raise ExchangeError("Transaction expired", details={"deadline": deadline})

    def _pair_for_token(self, token_address: str) -> PairState:
        pair = self.pairs.get(
            compute_pool_address(self._address, token_address, self.settlement_asset_address)
        )
        if pair is None or pair.token_address not in self._tokens:
            raise ExchangeError("Pair does not exist", details={"token": normalize_address(token_address)})
        return pair

    def _pair_for_path(self, path: Sequence[str]) -> PairState:
        if len(path) != 2:
            raise ExchangeError("Only two-hop paths are supported", details={"path": list(path)})
        if normalize_address(path[-1]) != self.settlement_asset_address:
            raise ExchangeError("Path must end in the settlement asset", details={"path": list(path)})
        return self._pair_for_token(path[0])

    @contextmanager
    def _all_or_nothing(self, pair: PairState, token: Any) -> Iterator[None]:
        """Roll back both ledgers and the pair reserves if the block raises."""
        saved = replace(pair, providers=dict(pair.providers))
        with ExitStack() as stack:
            stack.enter_context(token.ledger.atomic())
            stack.enter_context(self.settlement_ledger.atomic())
            try:
                yield
            except Exception:
                pair.reserve_token = saved.reserve_token
                pair.reserve_settlement = saved.reserve_settlement
                pair.lp_supply = saved.lp_supply
                pair.providers = saved.providers
                raise

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self._address,
            "fee_bps": self.fee_bps,
            "pairs": [pair.to_dict() for pair in self.pairs.values()],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        settlement_ledger: AccountLedger,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> "ConstantProductRouter":
        """Restore pools; tokens must be re-attached with ``bind_token``."""
        router = cls(
            settlement_ledger,
            address=data["address"],
            fee_bps=int(data.get("fee_bps", DEFAULT_LP_FEE_BPS)),
            time_provider=time_provider,
        )
        for entry in data.get("pairs", []):
            pair = PairState.from_dict(entry)
            router.pairs[pair.pool_address] = pair
        return router
