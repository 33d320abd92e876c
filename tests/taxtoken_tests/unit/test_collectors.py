import pytest

from taxtoken.core.collectors import Collector, CollectorRegistry
from taxtoken.core.exceptions import InvalidAddressError, WeightMismatchError

from tests.taxtoken_tests.helpers import DEV, MARKETING, TEAM


@pytest.fixture
def registry():
    registry = CollectorRegistry()
    registry.replace([MARKETING, DEV, TEAM], [60, 30, 10])
    return registry


def test_replace_swaps_whole_registry(registry):
    previous = registry.replace([DEV], [100])
    assert [c.address for c in previous] == [MARKETING, DEV, TEAM]
    assert registry.collectors == (Collector(DEV, 100),)


def test_weights_must_sum_to_total(registry):
    with pytest.raises(WeightMismatchError) as exc_info:
        registry.replace([MARKETING, DEV], [60, 39])
    assert exc_info.value.expected_total == 100
    assert exc_info.value.actual_total == 99
    assert [c.share_weight for c in registry.collectors] == [60, 30, 10]


@pytest.mark.parametrize(
    "addresses, weights",
    [
        ([MARKETING, DEV], [100]),
        ([], []),
        ([MARKETING, DEV], [100, 0]),
        ([MARKETING, DEV], [110, -10]),
        ([MARKETING], [True]),
    ],
)
def test_malformed_replacement_rejected(registry, addresses, weights):
    with pytest.raises(WeightMismatchError):
        registry.replace(addresses, weights)
    assert len(registry.collectors) == 3


def test_duplicate_or_zero_collector_rejected(registry):
    with pytest.raises(InvalidAddressError):
        registry.replace([MARKETING, MARKETING.upper().replace("0X", "0x")], [50, 50])
    with pytest.raises(InvalidAddressError):
        registry.replace(["0x" + "0" * 40], [100])
    assert len(registry.collectors) == 3


def test_custom_weight_total():
    registry = CollectorRegistry(weight_total=10_000)
    registry.replace([MARKETING, DEV], [7_500, 2_500])
    assert sum(c.share_weight for c in registry.snapshot()) == 10_000
    with pytest.raises(WeightMismatchError):
        CollectorRegistry(weight_total=0)


def test_snapshot_is_unaffected_by_later_replacement(registry):
    snapshot = registry.snapshot()
    registry.replace([TEAM], [100])
    assert [c.address for c in snapshot] == [MARKETING, DEV, TEAM]


def test_empty_registry_round_trip():
    registry = CollectorRegistry()
    assert registry.is_empty()
    restored = CollectorRegistry.from_dict(registry.to_dict())
    assert restored.is_empty()


def test_round_trip(registry):
    restored = CollectorRegistry.from_dict(registry.to_dict())
    assert restored.collectors == registry.collectors
