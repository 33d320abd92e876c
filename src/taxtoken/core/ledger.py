"""
Account Ledger.

Balance-per-address bookkeeping for a single fungible asset. The ledger is
the primitive the fee engine builds on: it moves value between accounts,
keeps ``total_supply`` equal to the sum of balances, and records events.

Security features:
- Overflow protection (256-bit bounds)
- Zero address checks
- Balance underflow prevention
- Snapshot/restore for all-or-nothing multi-step operations
"""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

from .config import UINT256_MAX, ZERO_ADDRESS
from .exceptions import InsufficientBalanceError, InvalidAddressError, InvalidAmountError
from .logging_config import short_address

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Represents a ledger or fee engine event."""

    event_type: str  # "Transfer", "FeesAccrued", "FeesProcessed", ...
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenEvent":
        return cls(
            event_type=data["event_type"],
            from_address=data["from_address"],
            to_address=data["to_address"],
            value=int(data["value"]),
            timestamp=float(data.get("timestamp", 0.0)),
            data=dict(data.get("data", {})),
        )


def normalize_address(address: str) -> str:
    """Normalize address to lowercase."""
    return (address or "").strip().lower()


def validate_address(address: str, field_name: str) -> str:
    """Normalize and reject empty or zero addresses."""
    normalized = normalize_address(address)
    if not normalized or normalized == ZERO_ADDRESS:
        raise InvalidAddressError(f"{field_name} is zero address", details={"field": field_name})
    return normalized


def validate_amount(amount: int, field_name: str = "amount") -> int:
    """Reject non-integer, negative, and over-uint256 amounts."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"{field_name} must be an integer base-unit amount")
    if amount < 0:
        raise InvalidAmountError(f"{field_name} cannot be negative", details={field_name: amount})
    if amount > UINT256_MAX:
        raise InvalidAmountError(f"{field_name} exceeds uint256", details={field_name: amount})
    return amount


def derive_address(*parts: str) -> str:
    """Derive a deterministic 20-byte hex address from the given parts."""
    digest = hashlib.sha3_256("|".join(parts).encode()).digest()
    return f"0x{digest[-20:].hex()}"


@dataclass
class AccountLedger:
    """
    Balance ledger for one asset.

    Accounts are created implicitly on first credit and never destroyed;
    a zero balance is a valid terminal state.

    Invariant: ``sum(balances.values()) == total_supply`` after every
    public call.
    """

    symbol: str
    decimals: int = 18
    address: str = ""
    total_supply: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address("ledger", self.symbol, str(time.time_ns()))
        self.address = normalize_address(self.address)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """Get the balance of an account (zero if never credited)."""
        return self.balances.get(normalize_address(account), 0)

    def holders(self) -> Dict[str, int]:
        """Accounts with a non-zero balance."""
        return {addr: bal for addr, bal in self.balances.items() if bal > 0}

    def is_conserved(self) -> bool:
        """True when the balances sum to the total supply."""
        return sum(self.balances.values()) == self.total_supply

    # ==================== State-Changing Functions ====================

    def issue(self, to: str, amount: int) -> None:
        """
        Create ``amount`` new units in ``to``.

        Used to seed the genesis supply and to wrap settlement value
        deposited from outside the ledger.
        """
        to_norm = validate_address(to, "recipient")
        validate_amount(amount)
        if self.total_supply + amount > UINT256_MAX:
            raise InvalidAmountError("issue would overflow total supply")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "Ledger issue",
            extra={
                "event": "ledger.issue",
                "asset": self.symbol,
                "to": short_address(to_norm),
                "amount": amount,
                "new_supply": self.total_supply,
            },
        )

    def move(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            InsufficientBalanceError: If sender holds less than amount.
                Nothing is mutated in that case.
        """
        sender_norm = normalize_address(sender)
        recipient_norm = validate_address(recipient, "recipient")
        validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"{self.symbol}: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"account": sender_norm, "balance": sender_balance, "amount": amount},
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
        self._emit("Transfer", sender_norm, recipient_norm, amount)

        logger.debug(
            "Ledger move",
            extra={
                "event": "ledger.move",
                "asset": self.symbol,
                "from": short_address(sender_norm),
                "to": short_address(recipient_norm),
                "amount": amount,
            },
        )

    def record(self, event_type: str, from_addr: str, to_addr: str, value: int, **data: Any) -> None:
        """Append a non-transfer event to the event log."""
        self._emit(event_type, from_addr, to_addr, value, data)

    @contextmanager
    def atomic(self) -> Iterator["AccountLedger"]:
        """
        Run a block all-or-nothing.

        Balances, supply and events are restored if the block raises;
        the exception is re-raised.
        """
        balances = dict(self.balances)
        total_supply = self.total_supply
        event_count = len(self.events)
        try:
            yield self
        except BaseException:
            self.balances = balances
            self.total_supply = total_supply
            del self.events[event_count:]
            logger.debug(
                "Ledger rollback",
                extra={"event": "ledger.rollback", "asset": self.symbol},
            )
            raise

    # ==================== Helpers ====================

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int,
              data: Dict[str, Any] | None = None) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
                data=data or {},
            )
        )

    # ==================== Serialization ====================

    def to_dict(self, include_events: bool = False) -> Dict[str, Any]:
        """Serialize ledger state to dictionary."""
        payload: Dict[str, Any] = {
            "symbol": self.symbol,
            "decimals": self.decimals,
            "address": self.address,
            "total_supply": self.total_supply,
            "balances": dict(self.balances),
        }
        if include_events:
            payload["events"] = [event.to_dict() for event in self.events]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountLedger":
        """Deserialize ledger state from dictionary."""
        ledger = cls(
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            address=data.get("address", ""),
            total_supply=int(data.get("total_supply", 0)),
        )
        ledger.balances = {normalize_address(k): int(v) for k, v in data.get("balances", {}).items()}
        ledger.events = [TokenEvent.from_dict(e) for e in data.get("events", [])]
        return ledger
