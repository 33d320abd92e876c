"""
Classification Registry.

Tags addresses as fee-exempt and/or as designated exchange pools, and
resolves each transfer to exactly one kind (exempt, sell, buy, wallet)
once per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List

from .ledger import normalize_address, validate_address
from .logging_config import short_address

logger = logging.getLogger(__name__)


class AddressClass(Enum):
    """Resolved role of a single address."""

    NORMAL = "normal"
    EXEMPT = "exempt"
    POOL = "pool"


class TransferKind(Enum):
    """Tax treatment of a transfer."""

    EXEMPT = "exempt"
    SELL = "sell"
    BUY = "buy"
    WALLET = "wallet"


@dataclass(frozen=True)
class ClassificationEntry:
    exempt: bool = False
    is_pool: bool = False

    def resolve(self) -> AddressClass:
        # exempt wins when an address is both
        if self.exempt:
            return AddressClass.EXEMPT
        if self.is_pool:
            return AddressClass.POOL
        return AddressClass.NORMAL

    @property
    def is_default(self) -> bool:
        return not self.exempt and not self.is_pool


class ClassificationRegistry:
    """
    Address -> classification mapping.

    Changes apply to subsequent transfers only. Administrative gating is
    done by the owning token; this registry only stores and resolves.
    """

    def __init__(self, entries: Dict[str, ClassificationEntry] | None = None):
        self._entries: Dict[str, ClassificationEntry] = {}
        for address, entry in (entries or {}).items():
            self._entries[normalize_address(address)] = entry

    def entry(self, address: str) -> ClassificationEntry:
        return self._entries.get(normalize_address(address), ClassificationEntry())

    def classify(self, address: str) -> AddressClass:
        return self.entry(address).resolve()

    def is_exempt(self, address: str) -> bool:
        return self.entry(address).exempt

    def is_pool(self, address: str) -> bool:
        return self.entry(address).is_pool

    def set_exempt(self, address: str, exempt: bool) -> None:
        self._update(address, exempt=bool(exempt))

    def set_pool(self, address: str, is_pool: bool) -> None:
        self._update(address, is_pool=bool(is_pool))

    def classify_transfer(self, sender: str, recipient: str) -> TransferKind:
        """
        Resolve the tax treatment of ``sender -> recipient``.

        Exemption on either side wins, then a pool recipient (sell), then a
        pool sender (buy); everything else is a wallet transfer.
        """
        sender_class = self.classify(sender)
        recipient_class = self.classify(recipient)

        if AddressClass.EXEMPT in (sender_class, recipient_class):
            return TransferKind.EXEMPT
        if recipient_class is AddressClass.POOL:
            return TransferKind.SELL
        if sender_class is AddressClass.POOL:
            return TransferKind.BUY
        return TransferKind.WALLET

    def exempt_addresses(self) -> List[str]:
        return sorted(addr for addr, entry in self._entries.items() if entry.exempt)

    def pool_addresses(self) -> List[str]:
        return sorted(addr for addr, entry in self._entries.items() if entry.is_pool)

    def _update(self, address: str, **changes: bool) -> None:
        address_norm = validate_address(address, "classified address")
        previous = self.entry(address_norm)
        updated = replace(previous, **changes)
        if updated.is_default:
            self._entries.pop(address_norm, None)
        else:
            self._entries[address_norm] = updated
        logger.info(
            "Classification updated",
            extra={
                "event": "classification.updated",
                "address": short_address(address_norm),
                "exempt": updated.exempt,
                "pool": updated.is_pool,
                "resolved": updated.resolve().value,
            },
        )

    def to_dict(self) -> Dict[str, Dict[str, bool]]:
        return {
            address: {"exempt": entry.exempt, "is_pool": entry.is_pool}
            for address, entry in sorted(self._entries.items())
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, bool]]) -> "ClassificationRegistry":
        return cls(
            {
                address: ClassificationEntry(
                    exempt=bool(flags.get("exempt", False)),
                    is_pool=bool(flags.get("is_pool", False)),
                )
                for address, flags in data.items()
            }
        )
