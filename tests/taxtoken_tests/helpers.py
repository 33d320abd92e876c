"""Shared addresses, amounts and clock for the taxtoken test suite."""

OWNER = "0x" + "a" * 40
TRADER = "0x" + "b" * 40
OTHER = "0x" + "c" * 40
MARKETING = "0x" + "1" * 40
DEV = "0x" + "2" * 40
TEAM = "0x" + "3" * 40
TOKEN_ADDRESS = "0x" + "d" * 40
SETTLEMENT_ADDRESS = "0x" + "e" * 40
ROUTER_ADDRESS = "0x" + "f" * 40
NEW_ROUTER_ADDRESS = "0x" + "9" * 40

DECIMALS = 9
SUPPLY = 1_000_000_000 * 10**DECIMALS
THRESHOLD = SUPPLY // 10_000
LIQUIDITY_TOKENS = 100_000_000 * 10**DECIMALS
LIQUIDITY_SETTLEMENT = 100 * 10**18


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds


def build_deployment(config=None, fund_pool=True, collectors=(MARKETING, DEV, TEAM), weights=(60, 30, 10)):
    """
    Token, router and settlement ledger wired together outside pytest
    fixtures, for hypothesis tests that need a fresh deployment per example.
    """
    from prometheus_client import CollectorRegistry

    from taxtoken.core.engine_config import EngineConfig
    from taxtoken.core.fee_token import FeeToken
    from taxtoken.core.ledger import AccountLedger
    from taxtoken.core.metrics import FeeEngineMetrics
    from taxtoken.exchange.memory_router import ConstantProductRouter

    clock = ManualClock(start_time=1_700_000_000)
    settlement = AccountLedger(symbol="WETH", decimals=18, address=SETTLEMENT_ADDRESS)
    router = ConstantProductRouter(settlement, address=ROUTER_ADDRESS, time_provider=clock.now)
    token = FeeToken(
        name="Booster",
        symbol="BSTR",
        owner=OWNER,
        initial_supply=SUPPLY,
        router=router,
        settlement_ledger=settlement,
        config=config or EngineConfig(),
        collectors=list(collectors),
        weights=list(weights),
        decimals=DECIMALS,
        address=TOKEN_ADDRESS,
        metrics=FeeEngineMetrics(registry=CollectorRegistry()),
        time_provider=clock.now,
    )
    router.create_pair(token)
    if fund_pool:
        settlement.issue(OWNER, LIQUIDITY_SETTLEMENT)
        router.add_liquidity(OWNER, token.address, LIQUIDITY_TOKENS, LIQUIDITY_SETTLEMENT)
    return token, router, settlement
