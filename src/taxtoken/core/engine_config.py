"""
Engine configuration records.

``EngineConfig`` bundles the administrator-mutated singletons (fee rates,
threshold policy, collector weight total, swap deadline) and is passed
explicitly to the token. Every mutation goes through the token's
owner-gated setters; the records themselves are immutable and replaced
whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from .config import BPS_DENOMINATOR, Settings, load_settings
from .exceptions import InvalidAmountError


def _check_bps(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= BPS_DENOMINATOR:
        raise InvalidAmountError(
            f"{name} must be an integer between 0 and {BPS_DENOMINATOR} basis points",
            details={name: value},
        )
    return value


@dataclass(frozen=True)
class FeeConfiguration:
    buy_fee_bps: int = 500
    sell_fee_bps: int = 500

    def __post_init__(self) -> None:
        _check_bps(self.buy_fee_bps, "buy_fee_bps")
        _check_bps(self.sell_fee_bps, "sell_fee_bps")

    @staticmethod
    def tax_on(amount: int, fee_bps: int) -> int:
        """Tax in base units, rounded down."""
        return amount * fee_bps // BPS_DENOMINATOR


@dataclass(frozen=True)
class ThresholdPolicy:
    auto_process_enabled: bool = True
    threshold_divisor: int = 10_000
    # numTokensToSwap; takes precedence over the supply-derived threshold
    manual_override_amount: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.threshold_divisor, bool) or not isinstance(self.threshold_divisor, int) \
                or self.threshold_divisor <= 0:
            raise InvalidAmountError("threshold_divisor must be a positive integer")
        override = self.manual_override_amount
        if override is not None and (isinstance(override, bool) or not isinstance(override, int) or override <= 0):
            raise InvalidAmountError("manual_override_amount must be a positive integer or None")

    def threshold_for(self, total_supply: int) -> int:
        if self.manual_override_amount is not None:
            return self.manual_override_amount
        return total_supply // self.threshold_divisor


@dataclass
class EngineConfig:
    fees: FeeConfiguration = field(default_factory=FeeConfiguration)
    threshold: ThresholdPolicy = field(default_factory=ThresholdPolicy)
    collector_weight_total: int = 100
    swap_deadline_seconds: int = 300

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            fees=FeeConfiguration(settings.buy_fee_bps, settings.sell_fee_bps),
            threshold=ThresholdPolicy(
                auto_process_enabled=settings.auto_process,
                threshold_divisor=settings.threshold_divisor,
            ),
            collector_weight_total=settings.collector_weight_total,
            swap_deadline_seconds=settings.swap_deadline_seconds,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        return cls.from_settings(load_settings(environ))

    def with_threshold(self, **changes: Any) -> ThresholdPolicy:
        return replace(self.threshold, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buy_fee_bps": self.fees.buy_fee_bps,
            "sell_fee_bps": self.fees.sell_fee_bps,
            "auto_process_enabled": self.threshold.auto_process_enabled,
            "threshold_divisor": self.threshold.threshold_divisor,
            "manual_override_amount": self.threshold.manual_override_amount,
            "collector_weight_total": self.collector_weight_total,
            "swap_deadline_seconds": self.swap_deadline_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        override = data.get("manual_override_amount")
        return cls(
            fees=FeeConfiguration(int(data.get("buy_fee_bps", 500)), int(data.get("sell_fee_bps", 500))),
            threshold=ThresholdPolicy(
                auto_process_enabled=bool(data.get("auto_process_enabled", True)),
                threshold_divisor=int(data.get("threshold_divisor", 10_000)),
                manual_override_amount=int(override) if override is not None else None,
            ),
            collector_weight_total=int(data.get("collector_weight_total", 100)),
            swap_deadline_seconds=int(data.get("swap_deadline_seconds", 300)),
        )
