import pytest

from taxtoken.core.exceptions import AdministrationError, UnauthorizedError
from taxtoken.core.pool_registry import PoolMigrationManager, PoolRegistry, compute_pool_address
from taxtoken.exchange.memory_router import ConstantProductRouter

from tests.taxtoken_tests.helpers import (
    NEW_ROUTER_ADDRESS,
    OWNER,
    ROUTER_ADDRESS,
    SETTLEMENT_ADDRESS,
    TOKEN_ADDRESS,
    TRADER,
)


def test_pool_address_ignores_token_order():
    assert compute_pool_address(ROUTER_ADDRESS, TOKEN_ADDRESS, SETTLEMENT_ADDRESS) == compute_pool_address(
        ROUTER_ADDRESS, SETTLEMENT_ADDRESS.upper().replace("0X", "0x"), TOKEN_ADDRESS
    )
    assert compute_pool_address(ROUTER_ADDRESS, TOKEN_ADDRESS, SETTLEMENT_ADDRESS) != compute_pool_address(
        NEW_ROUTER_ADDRESS, TOKEN_ADDRESS, SETTLEMENT_ADDRESS
    )


def test_registry_matches_router_pair(token, router):
    pair = router.pairs[token.pool_address]
    assert pair.token_address == token.address
    assert token.pools.registry == PoolRegistry.derive(ROUTER_ADDRESS, TOKEN_ADDRESS, SETTLEMENT_ADDRESS)
    assert token.pools.swap_path() == [TOKEN_ADDRESS, SETTLEMENT_ADDRESS]


def test_pool_is_funded_reads_reserves(funded_token):
    assert funded_token.pool_is_funded()


def test_unfunded_pool(token):
    assert not token.pool_is_funded()
    assert token.pools.reserves() == (0, 0)


class OneSidedRouter:
    address = ROUTER_ADDRESS
    settlement_asset_address = SETTLEMENT_ADDRESS

    def __init__(self, reserves):
        self.reserves = reserves

    def get_reserves(self, token_a, token_b):
        return self.reserves

    def get_amounts_out(self, amount_in, path):
        return [amount_in, 0]

    def swap_exact_tokens_for_settlement(self, amount_in, min_out, path, recipient, deadline):
        return 0


@pytest.mark.parametrize("reserves", [(1_000, 0), (0, 1_000)])
def test_zero_reserve_on_either_side_is_unfunded(reserves):
    pools = PoolMigrationManager(TOKEN_ADDRESS, OneSidedRouter(reserves))
    assert not pools.pool_is_funded()
    assert PoolMigrationManager(TOKEN_ADDRESS, OneSidedRouter((1_000, 1_000))).pool_is_funded()


def test_migrate_swaps_registry(settlement, router):
    manager = PoolMigrationManager(TOKEN_ADDRESS, router)
    new_router = ConstantProductRouter(settlement, address=NEW_ROUTER_ADDRESS)

    previous = manager.migrate(new_router)

    assert previous.router_address == ROUTER_ADDRESS
    assert manager.router is new_router
    assert manager.pool_address == compute_pool_address(NEW_ROUTER_ADDRESS, TOKEN_ADDRESS, SETTLEMENT_ADDRESS)
    assert manager.pool_address != previous.pool_address


def test_migrate_rejects_same_router_and_non_routers(router):
    manager = PoolMigrationManager(TOKEN_ADDRESS, router)
    with pytest.raises(AdministrationError):
        manager.migrate(router)
    with pytest.raises(AdministrationError):
        manager.migrate(object())
    assert manager.router is router


def test_token_migration_keeps_old_pool_classified(funded_token, settlement):
    old_pool = funded_token.pool_address
    new_router = ConstantProductRouter(settlement, address=NEW_ROUTER_ADDRESS)

    previous = funded_token.migrate_router(OWNER, new_router)

    assert previous.pool_address == old_pool
    assert funded_token.is_pool(funded_token.pool_address)
    assert funded_token.is_pool(old_pool)
    assert funded_token.events[-1].event_type == "RouterMigrated"

    funded_token.transfer(OWNER, TRADER, 10_000)
    receipt = funded_token.transfer(TRADER, old_pool, 10_000)
    assert receipt.tax == 500

    funded_token.set_pool(OWNER, old_pool, False)
    assert not funded_token.is_pool(old_pool)
    assert funded_token.transfer(TRADER, old_pool, 1_000).tax == 0


def test_token_migration_requires_owner(funded_token, settlement):
    new_router = ConstantProductRouter(settlement, address=NEW_ROUTER_ADDRESS)
    with pytest.raises(UnauthorizedError):
        funded_token.migrate_router(TRADER, new_router)
    assert funded_token.router.address == ROUTER_ADDRESS


def test_new_pool_unfunded_until_liquidity_added(funded_token, settlement):
    new_router = ConstantProductRouter(settlement, address=NEW_ROUTER_ADDRESS)
    funded_token.migrate_router(OWNER, new_router)
    new_router.create_pair(funded_token)
    assert not funded_token.pool_is_funded()

    settlement.issue(OWNER, 10**18)
    new_router.add_liquidity(OWNER, funded_token.address, 10**15, 10**18)
    assert funded_token.pool_is_funded()


def test_snapshot_check(router):
    manager = PoolMigrationManager(TOKEN_ADDRESS, router)
    assert PoolMigrationManager.check_snapshot(manager.to_dict(), router) is None
    other = ConstantProductRouter(router.settlement_ledger, address=NEW_ROUTER_ADDRESS)
    assert "does not match" in PoolMigrationManager.check_snapshot(manager.to_dict(), other)
