#!/usr/bin/env python3
"""
taxtoken operator CLI.

Operates on a deployment persisted in a JSON state file: a fee token, its
settlement ledger and the in-memory routers it trades through. Amounts are
in base units unless an option says otherwise.

Example:
    taxtoken init --owner 0xowner --collector 0xmarketing:60 --collector 0xdev:40 \\
        --liquidity-tokens 100000000000000000 --liquidity-settlement 10000000000000000000
    taxtoken sell 0xtrader 5000000000000
    taxtoken --json-output status
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taxtoken.core.config import load_settings
from taxtoken.core.engine_config import EngineConfig
from taxtoken.core.exceptions import FeeEngineError
from taxtoken.core.fee_token import FeeToken
from taxtoken.core.ledger import AccountLedger
from taxtoken.core.logging_config import setup_logging
from taxtoken.core.state import Deployment, load_state, save_state
from taxtoken.exchange.memory_router import ConstantProductRouter

logger = logging.getLogger(__name__)
console = Console()

CLI_ERRORS = (FeeEngineError, click.ClickException, ValueError, KeyError)


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _parse_collectors(values: Sequence[str]) -> Tuple[List[str], List[int]]:
    """Split ``ADDRESS:WEIGHT`` options into parallel lists."""
    addresses: List[str] = []
    weights: List[int] = []
    for value in values:
        address, sep, weight = value.rpartition(":")
        if not sep or not address:
            raise click.BadParameter(f"expected ADDRESS:WEIGHT, got {value!r}", param_hint="--collector")
        try:
            weights.append(int(weight))
        except ValueError as exc:
            raise click.BadParameter(f"weight must be an integer in {value!r}", param_hint="--collector") from exc
        addresses.append(address)
    return addresses, weights


def _load(ctx: click.Context) -> Deployment:
    return load_state(ctx.obj["state_file"])


def _save(ctx: click.Context, deployment: Deployment) -> None:
    save_state(ctx.obj["state_file"], deployment)


def _output(ctx: click.Context, data: Dict[str, Any], render: Callable[[Dict[str, Any]], None]) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(data, indent=2))
        return
    render(data)


def _print_result(title: str) -> Callable[[Dict[str, Any]], None]:
    def render(data: Dict[str, Any]) -> None:
        table = Table(show_header=False, box=box.ROUNDED)
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value)
            table.add_row(f"[bold cyan]{key}", str(value))
        console.print(Panel(table, title=f"[bold green]{title}", border_style="green"))

    return render


def _run_admin(ctx: click.Context, title: str, action: Callable[[Deployment], Dict[str, Any]]) -> None:
    """Load state, apply ``action``, save, and report."""
    try:
        deployment = _load(ctx)
        data = action(deployment)
        _save(ctx, deployment)
        _output(ctx, data, _print_result(title))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    "--state-file",
    envvar="TAXTOKEN_STATE_FILE",
    default="taxtoken_state.json",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Deployment state file",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option("--verbose", "-v", is_flag=True, help="Write JSON logs to stderr")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Rotating JSON log file")
@click.pass_context
def cli(ctx: click.Context, state_file: str, json_output: bool, verbose: bool, log_file: Optional[str]):
    """
    taxtoken - transfer-tax fee engine operator CLI

    Inspect and administer a fee token that taxes pool trades, converts
    accrued tax into the settlement asset once a threshold is reached, and
    pays the proceeds to weighted collectors.
    """
    ctx.ensure_object(dict)
    try:
        settings = load_settings()
    except FeeEngineError as exc:
        _cli_fail(exc)
    setup_logging(
        name="taxtoken",
        log_file=log_file,
        level=settings.log_level,
        environment=settings.network.value,
        enable_console=verbose,
        enable_file=bool(log_file),
    )
    ctx.obj["state_file"] = state_file
    ctx.obj["json_output"] = json_output
    ctx.obj["settings"] = settings


# ============================================================================
# Deployment
# ============================================================================

@cli.command("init")
@click.option("--owner", required=True, help="Administrator address; receives the supply")
@click.option("--name", default="Fee Token", show_default=True, help="Token name")
@click.option("--symbol", default="FEE", show_default=True, help="Token symbol")
@click.option("--supply", default=1_000_000_000, show_default=True, type=click.IntRange(min=0),
              help="Initial supply in whole tokens")
@click.option("--settlement-symbol", default="WETH", show_default=True, help="Settlement asset symbol")
@click.option("--collector", "collectors", multiple=True, help="Collector as ADDRESS:WEIGHT (repeatable)")
@click.option("--liquidity-tokens", default=0, type=click.IntRange(min=0),
              help="Owner tokens to seed the pool with")
@click.option("--liquidity-settlement", default=0, type=click.IntRange(min=0),
              help="Settlement units to seed the pool with (issued to the owner)")
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
@click.pass_context
def init_command(
    ctx: click.Context,
    owner: str,
    name: str,
    symbol: str,
    supply: int,
    settlement_symbol: str,
    collectors: Tuple[str, ...],
    liquidity_tokens: int,
    liquidity_settlement: int,
    force: bool,
):
    """Deploy a token, its settlement ledger and a router pair."""
    state_file = ctx.obj["state_file"]
    settings = ctx.obj["settings"]
    try:
        if os.path.exists(state_file) and not force:
            raise click.ClickException(f"{state_file} already exists (use --force to overwrite)")
        addresses, weights = _parse_collectors(collectors)

        settlement = AccountLedger(symbol=settlement_symbol, decimals=18)
        router = ConstantProductRouter(settlement)
        token = FeeToken(
            name=name,
            symbol=symbol,
            owner=owner,
            initial_supply=supply * 10**settings.decimals,
            router=router,
            settlement_ledger=settlement,
            config=EngineConfig.from_settings(settings),
            collectors=addresses,
            weights=weights,
            decimals=settings.decimals,
        )
        router.create_pair(token)
        if liquidity_tokens and liquidity_settlement:
            settlement.issue(owner, liquidity_settlement)
            router.add_liquidity(owner, token.address, liquidity_tokens, liquidity_settlement)

        deployment = Deployment(token=token, settlement_ledger=settlement, routers={router.address: router})
        _save(ctx, deployment)
        data = {
            "state_file": state_file,
            "token": token.address,
            "router": router.address,
            "pool": token.pool_address,
            "total_supply": token.total_supply,
            "pool_funded": token.pool_is_funded(),
        }
        _output(ctx, data, _print_result("Deployment Created"))
    except CLI_ERRORS as exc:
        _cli_fail(exc)


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context):
    """Show fee accrual, threshold progress and configuration."""
    try:
        data = _load(ctx).token.status()
    except CLI_ERRORS as exc:
        _cli_fail(exc)
        return

    if ctx.obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Token", f"{data['token']} ({data['address']})")
    table.add_row("[bold cyan]Owner", data["owner"])
    table.add_row("[bold green]Total Supply", str(data["total_supply"]))
    table.add_row("[bold green]Accrued Fees", str(data["accrued_fees"]))
    table.add_row("[bold green]Threshold", str(data["threshold"]))
    progress_style = "green" if data["threshold_reached"] else "yellow"
    table.add_row("[bold green]Progress", f"[{progress_style}]{data['threshold_progress_pct']}%[/]")
    table.add_row("[bold magenta]Auto Process", "enabled" if data["auto_process_enabled"] else "disabled")
    table.add_row("[bold magenta]Override", str(data["manual_override_amount"] or "-"))
    table.add_row("[bold magenta]Fees (buy/sell bps)", f"{data['buy_fee_bps']} / {data['sell_fee_bps']}")
    table.add_row("[bold yellow]Router", data["router"])
    table.add_row("[bold yellow]Pool", data["pool"])
    table.add_row("[bold yellow]Reserves", f"{data['pool_reserves'][0]} / {data['pool_reserves'][1]}")
    table.add_row("[bold yellow]Settlement Held", str(data["settlement_holdings"]))
    console.print(Panel(table, title="[bold green]Fee Engine Status", border_style="green"))

    if data["collectors"]:
        collectors = Table(title="Collectors", box=box.SIMPLE)
        collectors.add_column("Address", style="cyan")
        collectors.add_column("Weight", style="green", justify="right")
        for entry in data["collectors"]:
            collectors.add_row(entry["address"], str(entry["share_weight"]))
        console.print(collectors)
    else:
        console.print("[yellow]No collectors registered; proceeds will be retained[/]")


# ============================================================================
# Administration
# ============================================================================

@cli.command("set-fees")
@click.option("--caller", required=True, help="Owner address")
@click.option("--buy", "buy_bps", required=True, type=click.IntRange(0, 10_000), help="Buy fee in bps")
@click.option("--sell", "sell_bps", required=True, type=click.IntRange(0, 10_000), help="Sell fee in bps")
@click.pass_context
def set_fees_command(ctx: click.Context, caller: str, buy_bps: int, sell_bps: int):
    """Set buy and sell fee rates."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.set_fees(caller, buy_bps, sell_bps)
        return {"buy_fee_bps": buy_bps, "sell_fee_bps": sell_bps}

    _run_admin(ctx, "Fees Updated", action)


@cli.command("set-exempt")
@click.option("--caller", required=True, help="Owner address")
@click.argument("address")
@click.option("--exempt/--not-exempt", default=True, help="Exempt from fees")
@click.pass_context
def set_exempt_command(ctx: click.Context, caller: str, address: str, exempt: bool):
    """Mark ADDRESS as fee-exempt (or clear it)."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.set_exempt(caller, address, exempt)
        return {"address": address.lower(), "exempt": exempt}

    _run_admin(ctx, "Exemption Updated", action)


@cli.command("set-pool")
@click.option("--caller", required=True, help="Owner address")
@click.argument("address")
@click.option("--pool/--not-pool", default=True, help="Treat as an exchange pool")
@click.pass_context
def set_pool_command(ctx: click.Context, caller: str, address: str, pool: bool):
    """Mark ADDRESS as an exchange pool (or clear it)."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.set_pool(caller, address, pool)
        return {"address": address.lower(), "is_pool": pool}

    _run_admin(ctx, "Pool Classification Updated", action)


@cli.command("set-auto-process")
@click.option("--caller", required=True, help="Owner address")
@click.option("--enable/--disable", default=True, help="Convert fees automatically on sells")
@click.pass_context
def set_auto_process_command(ctx: click.Context, caller: str, enable: bool):
    """Enable or disable threshold-triggered processing."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.set_auto_process(caller, enable)
        return {"auto_process_enabled": enable}

    _run_admin(ctx, "Auto Processing Updated", action)


@cli.command("set-threshold-override")
@click.option("--caller", required=True, help="Owner address")
@click.argument("amount", type=click.IntRange(min=0))
@click.pass_context
def set_threshold_override_command(ctx: click.Context, caller: str, amount: int):
    """Set the processing threshold to AMOUNT (0 restores the supply-derived one)."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.set_threshold_override(caller, amount)
        return {
            "manual_override_amount": amount or None,
            "effective_threshold": deployment.token.effective_threshold(),
        }

    _run_admin(ctx, "Threshold Updated", action)


@cli.command("set-collectors")
@click.option("--caller", required=True, help="Owner address")
@click.option("--collector", "collectors", multiple=True, required=True,
              help="Collector as ADDRESS:WEIGHT (repeatable)")
@click.pass_context
def set_collectors_command(ctx: click.Context, caller: str, collectors: Tuple[str, ...]):
    """Replace the collector registry."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        addresses, weights = _parse_collectors(collectors)
        deployment.token.set_collectors(caller, addresses, weights)
        return {
            "collectors": [
                {"address": c.address, "share_weight": c.share_weight}
                for c in deployment.token.collectors.collectors
            ]
        }

    _run_admin(ctx, "Collectors Replaced", action)


@cli.command("migrate-router")
@click.option("--caller", required=True, help="Owner address")
@click.option("--liquidity-tokens", default=0, type=click.IntRange(min=0),
              help="Caller tokens to seed the new pool with")
@click.option("--liquidity-settlement", default=0, type=click.IntRange(min=0),
              help="Settlement units to seed the new pool with (issued to the caller)")
@click.pass_context
def migrate_router_command(ctx: click.Context, caller: str, liquidity_tokens: int, liquidity_settlement: int):
    """Deploy a fresh router and move the token onto it."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        token = deployment.token
        new_router = ConstantProductRouter(deployment.settlement_ledger)
        previous = token.migrate_router(caller, new_router)
        new_router.create_pair(token)
        deployment.add_router(new_router)
        if liquidity_tokens and liquidity_settlement:
            deployment.settlement_ledger.issue(caller, liquidity_settlement)
            new_router.add_liquidity(caller, token.address, liquidity_tokens, liquidity_settlement)
        return {
            "old_router": previous.router_address,
            "old_pool": previous.pool_address,
            "old_pool_still_classified": token.is_pool(previous.pool_address),
            "new_router": new_router.address,
            "new_pool": token.pool_address,
            "pool_funded": token.pool_is_funded(),
        }

    _run_admin(ctx, "Router Migrated", action)


@cli.command("transfer-ownership")
@click.option("--caller", required=True, help="Current owner address")
@click.argument("new_owner")
@click.pass_context
def transfer_ownership_command(ctx: click.Context, caller: str, new_owner: str):
    """Hand administration to NEW_OWNER."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.token.transfer_ownership(caller, new_owner)
        return {"owner": deployment.token.owner}

    _run_admin(ctx, "Ownership Transferred", action)


@cli.command("process-fees")
@click.option("--caller", required=True, help="Owner address")
@click.option("--amount", type=click.IntRange(min=1), help="Tokens to convert (default: all accrued)")
@click.option("--min-out", default=0, type=click.IntRange(min=0), help="Minimum settlement output")
@click.pass_context
def process_fees_command(ctx: click.Context, caller: str, amount: Optional[int], min_out: int):
    """Convert accrued fees now and distribute the proceeds."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        token = deployment.token
        result = token.process_fees(caller, amount or token.accrued_fees(), min_out)
        return result.to_dict()

    _run_admin(ctx, "Fees Processed", action)


@cli.command("distribute-fees")
@click.option("--caller", required=True, help="Owner address")
@click.argument("amount", type=click.IntRange(min=1))
@click.option("--in-token/--in-settlement", default=True,
              help="Pay out accrued tokens directly, or settlement holdings")
@click.pass_context
def distribute_fees_command(ctx: click.Context, caller: str, amount: int, in_token: bool):
    """Pay AMOUNT straight to the collectors without converting."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        payouts = deployment.token.distribute_fees(caller, amount, in_token=in_token)
        return {"in_token": in_token, "payouts": {p.address: p.amount for p in payouts}}

    _run_admin(ctx, "Fees Distributed", action)


# ============================================================================
# Trading
# ============================================================================

@cli.command("transfer")
@click.argument("sender")
@click.argument("recipient")
@click.argument("amount", type=click.IntRange(min=0))
@click.pass_context
def transfer_command(ctx: click.Context, sender: str, recipient: str, amount: int):
    """Transfer AMOUNT tokens through the transfer gate."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        receipt = deployment.token.transfer(sender, recipient, amount)
        return {
            "kind": receipt.kind.value,
            "amount": receipt.amount,
            "net_amount": receipt.net_amount,
            "tax": receipt.tax,
            "processing": receipt.processing.to_dict() if receipt.processing else None,
        }

    _run_admin(ctx, "Transfer", action)


@cli.command("fund")
@click.argument("address")
@click.argument("amount", type=click.IntRange(min=1))
@click.pass_context
def fund_command(ctx: click.Context, address: str, amount: int):
    """Credit ADDRESS with AMOUNT settlement units for local trading."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        deployment.settlement_ledger.issue(address, amount)
        return {
            "address": address.lower(),
            "settlement_balance": deployment.settlement_ledger.balance_of(address),
        }

    _run_admin(ctx, "Account Funded", action)


@cli.command("add-liquidity")
@click.argument("provider")
@click.argument("token_amount", type=click.IntRange(min=1))
@click.argument("settlement_amount", type=click.IntRange(min=1))
@click.pass_context
def add_liquidity_command(ctx: click.Context, provider: str, token_amount: int, settlement_amount: int):
    """Deposit liquidity into the active pool."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        return deployment.router.add_liquidity(provider, deployment.token.address, token_amount, settlement_amount)

    _run_admin(ctx, "Liquidity Added", action)


@cli.command("buy")
@click.argument("trader")
@click.argument("settlement_amount", type=click.IntRange(min=1))
@click.option("--min-out", default=0, type=click.IntRange(min=0), help="Minimum tokens received after tax")
@click.pass_context
def buy_command(ctx: click.Context, trader: str, settlement_amount: int, min_out: int):
    """Buy tokens from the pool with SETTLEMENT_AMOUNT."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        return deployment.router.swap_exact_settlement_for_tokens(
            trader, deployment.token.address, settlement_amount, min_out
        )

    _run_admin(ctx, "Buy", action)


@cli.command("sell")
@click.argument("trader")
@click.argument("amount", type=click.IntRange(min=1))
@click.option("--min-out", default=0, type=click.IntRange(min=0), help="Minimum settlement received")
@click.pass_context
def sell_command(ctx: click.Context, trader: str, amount: int, min_out: int):
    """Sell AMOUNT tokens into the pool."""
    def action(deployment: Deployment) -> Dict[str, Any]:
        return deployment.router.swap_exact_tokens_for_settlement_from(
            trader, deployment.token.address, amount, min_out
        )

    _run_admin(ctx, "Sell", action)


@cli.command("simulate")
@click.option("--trader", default="0x" + "7" * 40, show_default=True, help="Trader address")
@click.option("--rounds", default=10, show_default=True, type=click.IntRange(min=1), help="Buy/sell rounds")
@click.option("--buy-amount", required=True, type=click.IntRange(min=1), help="Settlement spent per buy")
@click.option("--dry-run", is_flag=True, help="Do not write the resulting state")
@click.pass_context
def simulate_command(ctx: click.Context, trader: str, rounds: int, buy_amount: int, dry_run: bool):
    """
    Run buy-then-sell rounds against the active pool.

    Each round the trader buys with BUY_AMOUNT settlement units and sells
    everything bought. Reports tax accrued and conversion cycles.
    """
    try:
        deployment = _load(ctx)
        token = deployment.token
        router = deployment.router
        accrued_before = token.accrued_fees()
        cycles: List[Dict[str, Any]] = []
        total_tax = 0

        deployment.settlement_ledger.issue(trader, buy_amount * rounds)
        for round_number in range(1, rounds + 1):
            bought = router.swap_exact_settlement_for_tokens(trader, token.address, buy_amount)
            sold = router.swap_exact_tokens_for_settlement_from(trader, token.address, bought["output"])
            total_tax += bought["tax"] + sold["tax"]
            if sold["processing"]:
                cycles.append({"round": round_number, **sold["processing"]})

        if not dry_run:
            _save(ctx, deployment)

        data = {
            "rounds": rounds,
            "tax_collected": total_tax,
            "accrued_before": accrued_before,
            "accrued_after": token.accrued_fees(),
            "threshold": token.effective_threshold(),
            "processing_cycles": cycles,
            "trader_settlement_balance": deployment.settlement_ledger.balance_of(trader),
            "saved": not dry_run,
        }
    except CLI_ERRORS as exc:
        _cli_fail(exc)
        return

    if ctx.obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return

    summary = Table(show_header=False, box=box.ROUNDED)
    for key in ("rounds", "tax_collected", "accrued_before", "accrued_after", "threshold",
                "trader_settlement_balance"):
        summary.add_row(f"[bold cyan]{key}", str(data[key]))
    console.print(Panel(summary, title="[bold green]Simulation", border_style="green"))
    if cycles:
        table = Table(title="Processing Cycles", box=box.SIMPLE)
        table.add_column("Round", justify="right")
        table.add_column("Status", style="magenta")
        table.add_column("Tokens In", justify="right")
        table.add_column("Settlement Out", justify="right", style="green")
        for cycle in cycles:
            table.add_row(str(cycle["round"]), cycle["status"], str(cycle["amount_in"]),
                          str(cycle["settlement_received"]))
        console.print(table)
    else:
        console.print("[yellow]Threshold not reached; no conversions ran[/]")


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
