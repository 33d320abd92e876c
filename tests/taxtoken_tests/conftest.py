import pytest
from prometheus_client import CollectorRegistry

from taxtoken.core.engine_config import EngineConfig
from taxtoken.core.fee_token import FeeToken
from taxtoken.core.ledger import AccountLedger
from taxtoken.core.metrics import FeeEngineMetrics
from taxtoken.exchange.memory_router import ConstantProductRouter

from tests.taxtoken_tests.helpers import (
    DECIMALS,
    DEV,
    LIQUIDITY_SETTLEMENT,
    LIQUIDITY_TOKENS,
    MARKETING,
    OWNER,
    ROUTER_ADDRESS,
    SETTLEMENT_ADDRESS,
    SUPPLY,
    TEAM,
    TOKEN_ADDRESS,
    ManualClock,
)


@pytest.fixture
def clock():
    return ManualClock(start_time=1_700_000_000)


@pytest.fixture
def metrics():
    return FeeEngineMetrics(registry=CollectorRegistry())


@pytest.fixture
def settlement():
    return AccountLedger(symbol="WETH", decimals=18, address=SETTLEMENT_ADDRESS)


@pytest.fixture
def router(settlement, clock):
    return ConstantProductRouter(settlement, address=ROUTER_ADDRESS, time_provider=clock.now)


@pytest.fixture
def make_token(router, settlement, metrics, clock):
    """Factory for a token with a pair opened on ``router`` (unfunded)."""

    def _make(config=None, collectors=(MARKETING, DEV, TEAM), weights=(60, 30, 10), supply=SUPPLY):
        token = FeeToken(
            name="Booster",
            symbol="BSTR",
            owner=OWNER,
            initial_supply=supply,
            router=router,
            settlement_ledger=settlement,
            config=config or EngineConfig(),
            collectors=list(collectors),
            weights=list(weights),
            decimals=DECIMALS,
            address=TOKEN_ADDRESS,
            metrics=metrics,
            time_provider=clock.now,
        )
        router.create_pair(token)
        return token

    return _make


@pytest.fixture
def token(make_token):
    return make_token()


@pytest.fixture
def funded_token(token, router, settlement):
    """Token whose pool holds 10% of supply against 100 settlement units."""
    settlement.issue(OWNER, LIQUIDITY_SETTLEMENT)
    router.add_liquidity(OWNER, token.address, LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)
    return token
