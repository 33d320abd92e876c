"""
Collector Registry.

Ordered set of (address, weight) pairs entitled to distributed fee
proceeds. The registry is replaced as a whole: a replacement is validated
completely before it is swapped in, so a rejected replacement leaves the
previous collectors untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from .exceptions import InvalidAddressError, WeightMismatchError
from .ledger import validate_address
from .logging_config import short_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collector:
    address: str
    share_weight: int


class CollectorRegistry:
    """
    Weighted collectors with a fixed weight total.

    Invariant: when non-empty, the weights sum to ``weight_total``.
    """

    def __init__(self, weight_total: int = 100):
        if weight_total <= 0:
            raise WeightMismatchError("Collector weight total must be positive", expected_total=weight_total)
        self.weight_total = weight_total
        self._collectors: Tuple[Collector, ...] = ()

    @property
    def collectors(self) -> Tuple[Collector, ...]:
        return self._collectors

    def snapshot(self) -> Tuple[Collector, ...]:
        """Immutable view of the registry at this instant."""
        return self._collectors

    def is_empty(self) -> bool:
        return not self._collectors

    def replace(self, addresses: Sequence[str], weights: Sequence[int]) -> Tuple[Collector, ...]:
        """
        Replace every collector in one step.

        Returns:
            The previous collectors.

        Raises:
            WeightMismatchError: Lists differ in length, a weight is not a
                positive integer, or weights do not sum to ``weight_total``.
            InvalidAddressError: An address is zero or duplicated.
        """
        new_collectors = self.build(addresses, weights, self.weight_total)
        previous = self._collectors
        self._collectors = new_collectors
        logger.info(
            "Collector registry replaced",
            extra={
                "event": "collectors.replaced",
                "count": len(new_collectors),
                "collectors": [short_address(c.address) for c in new_collectors],
                "weights": [c.share_weight for c in new_collectors],
            },
        )
        return previous

    @staticmethod
    def build(addresses: Sequence[str], weights: Sequence[int], weight_total: int) -> Tuple[Collector, ...]:
        """Validate and build a collector tuple without touching any registry."""
        if len(addresses) != len(weights):
            raise WeightMismatchError(
                f"Collector addresses ({len(addresses)}) and weights ({len(weights)}) differ in length",
                expected_total=weight_total,
            )
        if not addresses:
            raise WeightMismatchError(
                "Collector registry replacement must name at least one collector",
                expected_total=weight_total,
                actual_total=0,
            )

        seen = set()
        collectors: List[Collector] = []
        for address, weight in zip(addresses, weights):
            address_norm = validate_address(address, "collector")
            if address_norm in seen:
                raise InvalidAddressError(
                    f"Duplicate collector {address_norm}", details={"collector": address_norm}
                )
            if isinstance(weight, bool) or not isinstance(weight, int) or weight <= 0:
                raise WeightMismatchError(
                    f"Collector weight must be a positive integer, got {weight!r}",
                    expected_total=weight_total,
                )
            seen.add(address_norm)
            collectors.append(Collector(address=address_norm, share_weight=weight))

        actual_total = sum(c.share_weight for c in collectors)
        if actual_total != weight_total:
            raise WeightMismatchError(
                f"Collector weights sum to {actual_total}, expected {weight_total}",
                expected_total=weight_total,
                actual_total=actual_total,
            )
        return tuple(collectors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weight_total": self.weight_total,
            "collectors": [
                {"address": c.address, "share_weight": c.share_weight} for c in self._collectors
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectorRegistry":
        registry = cls(weight_total=int(data.get("weight_total", 100)))
        entries = data.get("collectors", [])
        if entries:
            registry.replace(
                [entry["address"] for entry in entries],
                [int(entry["share_weight"]) for entry in entries],
            )
        return registry
