"""
Fee engine Prometheus metrics.

Tracks how much tax is accrued per side, how processing cycles end, and
how much settlement is paid out to collectors.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge


class FeeEngineMetrics:
    """Metrics for transfer taxation and fee processing."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.fees_accrued = Counter(
            'taxtoken_fees_accrued_total',
            'Tax accrued into the token balance in base units',
            ['token', 'side'],
            registry=self.registry
        )

        self.taxed_transfers = Counter(
            'taxtoken_taxed_transfers_total',
            'Transfers routed through the transfer gate',
            ['token', 'kind'],
            registry=self.registry
        )

        self.processing_cycles = Counter(
            'taxtoken_processing_cycles_total',
            'Fee processing cycles by outcome',
            ['token', 'trigger', 'status'],
            registry=self.registry
        )

        self.tokens_converted = Counter(
            'taxtoken_tokens_converted_total',
            'Accrued tokens converted into the settlement asset',
            ['token'],
            registry=self.registry
        )

        self.settlement_distributed = Counter(
            'taxtoken_settlement_distributed_total',
            'Value paid out to collectors in base units',
            ['token', 'asset'],
            registry=self.registry
        )

        self.accrued_balance = Gauge(
            'taxtoken_accrued_balance',
            'Current accrued fee balance held by the token',
            ['token'],
            registry=self.registry
        )

    def record_tax(self, token: str, side: str, amount: int) -> None:
        self.taxed_transfers.labels(token=token, kind=side).inc()
        if amount > 0:
            self.fees_accrued.labels(token=token, side=side).inc(amount)

    def record_cycle(self, token: str, trigger: str, status: str) -> None:
        self.processing_cycles.labels(token=token, trigger=trigger, status=status).inc()


_fee_metrics: Optional[FeeEngineMetrics] = None


def get_fee_metrics() -> FeeEngineMetrics:
    """Return the process-wide metrics instance bound to the default registry."""
    global _fee_metrics
    if _fee_metrics is None:
        _fee_metrics = FeeEngineMetrics()
    return _fee_metrics
