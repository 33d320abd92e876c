import pytest

from taxtoken.core.exceptions import ExchangeError
from taxtoken.core.ledger import AccountLedger
from taxtoken.exchange.memory_router import ConstantProductRouter

from tests.taxtoken_tests.helpers import (
    LIQUIDITY_SETTLEMENT,
    LIQUIDITY_TOKENS,
    OTHER,
    OWNER,
    SETTLEMENT_ADDRESS,
    TRADER,
)


def _amount_out(amount_in, reserve_in, reserve_out, fee_bps=30):
    with_fee = amount_in * (10_000 - fee_bps)
    return with_fee * reserve_out // (reserve_in * 10_000 + with_fee)


def test_create_pair_matches_token_pool(token, router):
    pair = router.create_pair(token)
    assert pair.pool_address == token.pool_address
    assert router.create_pair(token) is pair
    assert router.settlement_asset_address == SETTLEMENT_ADDRESS


def test_lp_fee_bounds(settlement):
    with pytest.raises(ExchangeError):
        ConstantProductRouter(settlement, fee_bps=10_000)


def test_add_liquidity_mints_shares(token, router, settlement):
    settlement.issue(OWNER, 6 * 10**18)
    first = router.add_liquidity(OWNER, token.address, 10**16, 4 * 10**18)
    assert first["lp_tokens"] == 2 * 10**17
    second = router.add_liquidity(OWNER, token.address, 5 * 10**15, 2 * 10**18)
    assert second["lp_tokens"] == 10**17
    pair = router.pairs[token.pool_address]
    assert pair.lp_supply == 3 * 10**17
    assert router.get_reserves(token.address, settlement.address) == (15 * 10**15, 6 * 10**18)
    assert router.get_reserves(settlement.address, token.address) == (6 * 10**18, 15 * 10**15)


def test_taxed_liquidity_deposit_credits_net(token, router, settlement):
    token.transfer(OWNER, TRADER, 10**16)
    settlement.issue(TRADER, 10**18)
    result = router.add_liquidity(TRADER, token.address, 10**16, 10**18)
    assert result["token_deposited"] == 10**16 - 10**16 * 500 // 10_000
    assert token.accrued_fees() == 10**16 * 500 // 10_000


def test_missing_pair_has_no_reserves(router, settlement):
    assert router.get_reserves(OTHER, settlement.address) == (0, 0)
    with pytest.raises(ExchangeError):
        router.get_amounts_out(100, [OTHER, settlement.address])


def test_quote_formula(funded_token, router, settlement):
    amounts = router.get_amounts_out(10**12, [funded_token.address, settlement.address])
    assert amounts == [10**12, _amount_out(10**12, LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)]


def test_prepaid_swap_requires_delivery(funded_token, router, settlement, clock):
    path = [funded_token.address, settlement.address]
    with pytest.raises(ExchangeError, match="not delivered"):
        router.swap_exact_tokens_for_settlement(10**9, 0, path, OWNER, clock.now() + 60)


def test_prepaid_swap_deadline(funded_token, router, settlement, clock):
    path = [funded_token.address, settlement.address]
    with pytest.raises(ExchangeError, match="expired"):
        router.swap_exact_tokens_for_settlement(10**9, 0, path, OWNER, clock.now() - 1)


@pytest.mark.parametrize("hops", ["three", "reversed"])
def test_prepaid_swap_path_validation(funded_token, router, settlement, clock, hops):
    if hops == "three":
        path = [funded_token.address, OTHER, settlement.address]
    else:
        path = [settlement.address, funded_token.address]
    with pytest.raises(ExchangeError):
        router.swap_exact_tokens_for_settlement(10**9, 0, path, OWNER, clock.now() + 60)


def test_trader_sell_pays_tax_then_swaps_net(funded_token, router, settlement):
    funded_token.transfer(OWNER, TRADER, 10_000 * 10**9)
    k_before = LIQUIDITY_TOKENS * LIQUIDITY_SETTLEMENT

    result = router.swap_exact_tokens_for_settlement_from(TRADER, funded_token.address, 10_000 * 10**9)

    assert result["tax"] == 500 * 10**9
    assert result["pool_input"] == 9_500 * 10**9
    assert result["output"] == _amount_out(9_500 * 10**9, LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)
    assert settlement.balance_of(TRADER) == result["output"]
    assert funded_token.accrued_fees() == 500 * 10**9
    reserve_token, reserve_settlement = router.get_reserves(funded_token.address, settlement.address)
    assert reserve_token * reserve_settlement >= k_before
    assert reserve_token == funded_token.balance_of(funded_token.pool_address)


def test_trader_sell_min_out_reverts_everything(funded_token, router, settlement):
    funded_token.transfer(OWNER, TRADER, 10_000 * 10**9)
    with pytest.raises(ExchangeError):
        router.swap_exact_tokens_for_settlement_from(TRADER, funded_token.address, 10_000 * 10**9, min_out=10**30)
    assert funded_token.balance_of(TRADER) == 10_000 * 10**9
    assert funded_token.accrued_fees() == 0
    assert router.get_reserves(funded_token.address, settlement.address) == (LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)


def test_trader_buy_receives_net_of_tax(funded_token, router, settlement):
    settlement.issue(TRADER, 10**18)

    result = router.swap_exact_settlement_for_tokens(TRADER, funded_token.address, 10**18)

    pool_output = _amount_out(10**18, LIQUIDITY_SETTLEMENT, LIQUIDITY_TOKENS)
    tax = pool_output * 500 // 10_000
    assert result["pool_output"] == pool_output
    assert result["tax"] == tax
    assert funded_token.balance_of(TRADER) == pool_output - tax
    assert funded_token.accrued_fees() == tax
    assert settlement.balance_of(TRADER) == 0


def test_trader_buy_min_out_applies_after_tax(funded_token, router, settlement):
    settlement.issue(TRADER, 10**18)
    pool_output = _amount_out(10**18, LIQUIDITY_SETTLEMENT, LIQUIDITY_TOKENS)
    with pytest.raises(ExchangeError):
        router.swap_exact_settlement_for_tokens(TRADER, funded_token.address, 10**18, min_out=pool_output)
    assert settlement.balance_of(TRADER) == 10**18
    assert funded_token.balance_of(TRADER) == 0
    assert funded_token.accrued_fees() == 0


def test_sync_realigns_reserves(funded_token, router, settlement):
    funded_token.transfer(OWNER, funded_token.pool_address, 10**9)
    pair = router.sync(funded_token.address)
    assert pair.reserve_token == LIQUIDITY_TOKENS + 10**9


def test_round_trip_and_rebind(funded_token, router, settlement):
    restored = ConstantProductRouter.from_dict(router.to_dict(), settlement)
    assert restored.address == router.address
    with pytest.raises(ExchangeError):
        restored.swap_exact_settlement_for_tokens(TRADER, funded_token.address, 1)
    restored.bind_token(funded_token)
    assert restored.get_reserves(funded_token.address, settlement.address) == (
        LIQUIDITY_TOKENS,
        LIQUIDITY_SETTLEMENT,
    )


def test_bind_unknown_token(router):
    class Stranger:
        address = OTHER

    with pytest.raises(ExchangeError):
        router.bind_token(Stranger())


def test_separate_settlement_ledgers_do_not_mix(token):
    other_settlement = AccountLedger(symbol="USDC", decimals=6)
    other_router = ConstantProductRouter(other_settlement)
    assert other_router.get_reserves(token.address, other_settlement.address) == (0, 0)
