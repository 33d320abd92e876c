import pytest

from taxtoken.core.exceptions import EmptyRegistryError, InsufficientBalanceError, InvalidAmountError
from taxtoken.core.threshold_monitor import ProcessingLock, ProcessingStatus

from tests.taxtoken_tests.helpers import (
    DEV,
    LIQUIDITY_SETTLEMENT,
    LIQUIDITY_TOKENS,
    MARKETING,
    OWNER,
    TEAM,
    THRESHOLD,
)


def test_lock_guard_is_non_reentrant():
    lock = ProcessingLock()
    with lock.guard() as outer:
        assert outer is True
        assert lock.held
        with lock.guard() as inner:
            assert inner is False
        assert lock.held
    assert not lock.held


def test_lock_released_when_block_raises():
    lock = ProcessingLock()
    with pytest.raises(RuntimeError):
        with lock.guard():
            raise RuntimeError("boom")
    assert not lock.held


def test_effective_threshold(funded_token):
    assert funded_token.effective_threshold() == THRESHOLD
    funded_token.set_threshold_override(OWNER, 5)
    assert funded_token.monitor.effective_threshold() == 5


def test_should_process_conditions(funded_token):
    monitor = funded_token.monitor
    assert not monitor.should_process()

    funded_token.ledger.move(OWNER, funded_token.address, THRESHOLD - 1)
    assert not monitor.should_process()

    funded_token.ledger.move(OWNER, funded_token.address, 1)
    assert monitor.should_process()
    assert not monitor.should_process(transfer_exempt=True)

    with monitor.lock.guard():
        assert not monitor.should_process()

    funded_token.set_auto_process(OWNER, False)
    assert not monitor.should_process()


def test_process_skips_while_locked(funded_token):
    funded_token.ledger.move(OWNER, funded_token.address, THRESHOLD)
    with funded_token.monitor.lock.guard():
        result = funded_token.monitor.process()
    assert result.status is ProcessingStatus.SKIPPED_LOCKED
    assert funded_token.accrued_fees() == THRESHOLD


def test_process_converts_and_distributes(funded_token, settlement):
    funded_token.ledger.move(OWNER, funded_token.address, THRESHOLD)

    result = funded_token.monitor.process(trigger="manual")

    assert result.status is ProcessingStatus.COMPLETED
    assert result.amount_in == THRESHOLD
    assert result.settlement_received > 0
    assert sum(p.amount for p in result.payouts) == result.settlement_received
    assert funded_token.accrued_fees() == 0
    assert funded_token.settlement_holdings() == 0
    paid = [settlement.balance_of(a) for a in (MARKETING, DEV, TEAM)]
    assert paid[0] == result.settlement_received * 60 // 100
    assert paid[1] == result.settlement_received * 30 // 100
    assert sum(paid) == result.settlement_received
    assert not funded_token.monitor.lock.held


def test_process_partial_amount(funded_token):
    funded_token.ledger.move(OWNER, funded_token.address, THRESHOLD)
    result = funded_token.monitor.process(amount=THRESHOLD // 4)
    assert result.amount_in == THRESHOLD // 4
    assert funded_token.accrued_fees() == THRESHOLD - THRESHOLD // 4


def test_process_rejects_bad_amounts(funded_token):
    funded_token.ledger.move(OWNER, funded_token.address, 10)
    with pytest.raises(InsufficientBalanceError):
        funded_token.monitor.process(amount=11)
    with pytest.raises(InvalidAmountError):
        funded_token.monitor.process(amount=0)
    assert not funded_token.monitor.lock.held


def test_empty_registry_retains_proceeds(make_token, router, settlement):
    token = make_token(collectors=(), weights=())
    settlement.issue(OWNER, LIQUIDITY_SETTLEMENT)
    router.add_liquidity(OWNER, token.address, LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)
    token.ledger.move(OWNER, token.address, THRESHOLD)

    with pytest.raises(EmptyRegistryError):
        token.monitor.process()

    assert token.accrued_fees() == 0
    assert token.settlement_holdings() > 0
    assert not token.monitor.lock.held
