#!/usr/bin/env python3
"""
vestflow CLI - schedule, sale and reward pool operations

Every invocation loads the persisted state, runs one operation through
DistributionService and saves the state back:
- Vesting schedules: create, inspect, release, revoke
- Staged sale: stage activation, whitelists, purchases, claims
- Reward pool: phase withdrawals and status
- Ledger: custody funding and balances
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vestflow.core.clock import system_time
from vestflow.core.config_manager import ConfigManager
from vestflow.core.distribution_service import DistributionService
from vestflow.core.exceptions import VestingError
from vestflow.core.ledger import InMemoryLedger
from vestflow.core.logging_config import setup_logging
from vestflow.core.state_store import StateStore

logger = logging.getLogger("vestflow.cli")
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    """Render a flat payload as JSON or a rich key/value panel."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key}", json.dumps(value) if isinstance(value, (dict, list)) else str(value))
    console.print(Panel(table, title=f"[bold green]{title}", border_style="green"))


def _config(ctx: click.Context) -> ConfigManager:
    config = ctx.obj.get("config")
    if config is None:
        config = ConfigManager(
            environment=ctx.obj["environment"],
            config_dir=ctx.obj["config_dir"],
        )
        setup_logging(config.logging, environment=config.environment.value)
        ctx.obj["config"] = config
    return config


def _store(ctx: click.Context) -> StateStore:
    config = _config(ctx)
    return StateStore(ctx.obj.get("state_file") or config.storage.state_file)


def _current_time(ctx: click.Context) -> int:
    now = ctx.obj.get("now")
    return now if now is not None else system_time()


def _load_service(ctx: click.Context) -> DistributionService:
    return _store(ctx).load_or_create(_config(ctx), lambda: _current_time(ctx))


def _save_service(ctx: click.Context, service: DistributionService) -> None:
    _store(ctx).save(service)


def _caller(ctx: click.Context, service: DistributionService) -> str:
    return ctx.obj.get("caller") or service.owner


# ============================================================================
# CLI Groups
# ============================================================================

@click.group()
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.option(
    '--environment',
    type=click.Choice(['development', 'testnet', 'production']),
    envvar='VESTFLOW_ENVIRONMENT',
    default='development',
    show_default=True,
    help='Configuration environment',
)
@click.option(
    '--config-dir',
    type=click.Path(file_okay=False),
    help='Directory holding default.yaml and <environment>.yaml',
)
@click.option('--state-file', type=click.Path(dir_okay=False), help='Override storage.state_file')
@click.option('--caller', help='Account performing the operation (defaults to the registry owner)')
@click.option('--now', type=int, help='Evaluate at this unix timestamp instead of the wall clock')
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    environment: str,
    config_dir: Optional[str],
    state_file: Optional[str],
    caller: Optional[str],
    now: Optional[int],
):
    """
    vestflow - time-gated release of fungible asset units

    Manage vesting schedules, a staged token sale and a phased reward pool
    against a persisted custody ledger.
    """
    ctx.ensure_object(dict)
    ctx.obj['json_output'] = json_output
    ctx.obj['environment'] = environment
    ctx.obj['config_dir'] = config_dir
    ctx.obj['state_file'] = state_file
    ctx.obj['caller'] = caller
    ctx.obj['now'] = now


# ============================================================================
# Vesting schedules
# ============================================================================

@cli.group()
def schedule():
    """Vesting schedule commands"""
    pass


@schedule.command("create")
@click.argument("beneficiary")
@click.option("--start", type=int, required=True, help="Vesting start (unix seconds)")
@click.option("--cliff", type=int, default=0, show_default=True, help="Cliff duration in seconds")
@click.option("--duration", type=int, required=True, help="Total vesting duration in seconds")
@click.option("--slice-period", type=int, default=1, show_default=True, help="Release granularity in seconds")
@click.option("--amount", type=int, required=True, help="Units allocated to the schedule")
@click.option("--revocable/--no-revocable", default=True, show_default=True)
@click.pass_context
def schedule_create(ctx: click.Context, beneficiary: str, start: int, cliff: int, duration: int,
                    slice_period: int, amount: int, revocable: bool):
    """
    Allocate custody funds to a new vesting schedule.

    Example:
        vestflow schedule create alice --start 1700000000 --duration 31536000 --amount 1000
    """
    try:
        service = _load_service(ctx)
        schedule_id = service.create_schedule(
            beneficiary, start, cliff, duration, slice_period, revocable, amount,
            caller=_caller(ctx, service),
        )
        _save_service(ctx, service)
        _emit(ctx, service.get_schedule(schedule_id).to_dict(), "Schedule Created")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@schedule.command("releasable")
@click.argument("schedule_id")
@click.pass_context
def schedule_releasable(ctx: click.Context, schedule_id: str):
    """Show the amount currently releasable from a schedule."""
    try:
        service = _load_service(ctx)
        amount = service.compute_releasable(schedule_id)
        _emit(ctx, {"schedule_id": schedule_id, "releasable": amount}, "Releasable")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@schedule.command("release")
@click.argument("schedule_id")
@click.option("--amount", type=int, help="Units to release (default: everything releasable)")
@click.pass_context
def schedule_release(ctx: click.Context, schedule_id: str, amount: Optional[int]):
    """Release vested units to the beneficiary."""
    try:
        service = _load_service(ctx)
        caller = _caller(ctx, service)
        if amount is None:
            amount = service.release_all(schedule_id, caller)
        else:
            service.release(schedule_id, amount, caller)
        _save_service(ctx, service)
        record = service.get_schedule(schedule_id)
        _emit(
            ctx,
            {"schedule_id": schedule_id, "amount": amount, "released": record.released},
            "Released",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@schedule.command("revoke")
@click.argument("schedule_id")
@click.pass_context
def schedule_revoke(ctx: click.Context, schedule_id: str):
    """Revoke a schedule, paying out what has vested so far."""
    try:
        service = _load_service(ctx)
        paid = service.revoke(schedule_id, _caller(ctx, service))
        _save_service(ctx, service)
        record = service.get_schedule(schedule_id)
        _emit(
            ctx,
            {"schedule_id": schedule_id, "paid_out": paid, "revoked_at": record.revoked_at},
            "Revoked",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@schedule.command("list")
@click.option("--beneficiary", help="Only schedules of this beneficiary")
@click.pass_context
def schedule_list(ctx: click.Context, beneficiary: Optional[str]):
    """List vesting schedules with their releasable amounts."""
    try:
        service = _load_service(ctx)
        registry = service.registry
        if beneficiary:
            records = registry.schedules_for(beneficiary)
        else:
            records = [registry.get_schedule(sid) for sid in registry.schedule_ids]
        now = _current_time(ctx)
        rows = [dict(record.to_dict(), releasable=record.releasable(now)) for record in records]

        if ctx.obj.get("json_output"):
            click.echo(json.dumps({"schedules": rows}, indent=2))
            return

        table = Table(title="Vesting Schedules", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Beneficiary")
        table.add_column("Total", justify="right")
        table.add_column("Released", justify="right")
        table.add_column("Releasable", justify="right", style="green")
        table.add_column("Status")
        for row in rows:
            status = "revoked" if row["revoked"] else (
                "exhausted" if row["released"] == row["total_amount"] else "active"
            )
            table.add_row(
                row["schedule_id"][:16],
                row["beneficiary"],
                str(row["total_amount"]),
                str(row["released"]),
                str(row["releasable"]),
                status,
            )
        console.print(table)
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


# ============================================================================
# Staged sale
# ============================================================================

@cli.group()
def sale():
    """Staged sale commands"""
    pass


@sale.command("activate")
@click.argument("stage_id", type=int)
@click.option("--rate", type=int, required=True, help="Units sold per payment unit")
@click.pass_context
def sale_activate(ctx: click.Context, stage_id: int, rate: int):
    """Make a stage the active one."""
    try:
        service = _load_service(ctx)
        service.activate_stage(stage_id, rate, _caller(ctx, service))
        _save_service(ctx, service)
        _emit(ctx, service.sale.get_stage(stage_id).to_dict(), "Stage Activated")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@sale.command("whitelist")
@click.argument("stage_id", type=int)
@click.argument("account")
@click.option("--remove", is_flag=True, help="Remove instead of add")
@click.pass_context
def sale_whitelist(ctx: click.Context, stage_id: int, account: str, remove: bool):
    """Add or remove an account on a stage whitelist."""
    try:
        service = _load_service(ctx)
        caller = _caller(ctx, service)
        if remove:
            service.remove_from_whitelist(stage_id, account, caller)
        else:
            service.add_to_whitelist(stage_id, account, caller)
        _save_service(ctx, service)
        _emit(
            ctx,
            {"stage_id": stage_id, "account": account,
             "whitelisted": service.is_whitelisted(stage_id, account)},
            "Whitelist",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@sale.command("purchase")
@click.argument("stage_id", type=int)
@click.option("--payment", type=int, required=True, help="Payment amount")
@click.pass_context
def sale_purchase(ctx: click.Context, stage_id: int, payment: int):
    """Buy into the active stage as --caller."""
    try:
        service = _load_service(ctx)
        purchase = service.purchase(stage_id, _caller(ctx, service), payment)
        _save_service(ctx, service)
        _emit(ctx, purchase.to_dict(), "Purchase")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@sale.command("claim")
@click.argument("stage_id", type=int)
@click.pass_context
def sale_claim(ctx: click.Context, stage_id: int):
    """Claim vested purchase units as --caller."""
    try:
        service = _load_service(ctx)
        buyer = _caller(ctx, service)
        amount = service.claim_purchase(stage_id, buyer)
        _save_service(ctx, service)
        purchase = service.get_purchase(stage_id, buyer)
        _emit(
            ctx,
            {"stage_id": stage_id, "buyer": buyer, "claimed": amount,
             "claimed_total": purchase.claimed_amount, "completed": purchase.completed},
            "Claimed",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@sale.command("status")
@click.pass_context
def sale_status(ctx: click.Context):
    """Show every stage with its sold amount and remaining cap."""
    try:
        service = _load_service(ctx)
        current = service.sale.current_stage()
        stages = [dict(stage.to_dict(), remaining=stage.remaining) for stage in service.sale.stages.values()]

        if ctx.obj.get("json_output"):
            click.echo(json.dumps(
                {"active_stage": current.stage_id if current else None, "stages": stages}, indent=2
            ))
            return

        table = Table(title="Sale Stages", box=box.ROUNDED)
        table.add_column("ID", justify="right")
        table.add_column("Name", style="cyan")
        table.add_column("Rate", justify="right")
        table.add_column("TGE %", justify="right")
        table.add_column("Sold", justify="right")
        table.add_column("Remaining", justify="right", style="green")
        table.add_column("Active")
        for stage in stages:
            table.add_row(
                str(stage["stage_id"]),
                stage["name"],
                str(stage["rate"]),
                str(stage["tge_percentage"]),
                str(stage["sold"]),
                str(stage["remaining"]),
                "[bold green]yes" if stage["active"] else "no",
            )
        console.print(table)
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


# ============================================================================
# Reward pool
# ============================================================================

@cli.group()
def pool():
    """Reward pool commands"""
    pass


@pool.command("withdraw")
@click.pass_context
def pool_withdraw(ctx: click.Context):
    """Withdraw every newly unlocked phase to the pool recipient."""
    try:
        service = _load_service(ctx)
        amount = service.withdraw_pool(_caller(ctx, service))
        _save_service(ctx, service)
        _emit(
            ctx,
            {"recipient": service.pool.recipient, "amount": amount,
             "claimed_amount": service.pool.claimed_amount},
            "Pool Withdrawal",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@pool.command("status")
@click.pass_context
def pool_status(ctx: click.Context):
    """Show pool phase progress."""
    try:
        service = _load_service(ctx)
        reward_pool = service.pool
        _emit(
            ctx,
            {
                "state": reward_pool.state().value,
                "recipient": reward_pool.recipient,
                "total_amount": reward_pool.total_amount,
                "total_phases": reward_pool.total_phases,
                "elapsed_phases": reward_pool.elapsed_phases(),
                "entitled_amount": reward_pool.entitled_amount(),
                "claimed_amount": reward_pool.claimed_amount,
                "withdrawable_amount": reward_pool.withdrawable_amount(),
            },
            "Reward Pool",
        )
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


# ============================================================================
# Ledger
# ============================================================================

@cli.group()
def ledger():
    """Custody ledger commands"""
    pass


@ledger.command("fund")
@click.argument("amount", type=int)
@click.option("--account", help="Account to credit (defaults to the custody account)")
@click.pass_context
def ledger_fund(ctx: click.Context, amount: int, account: Optional[str]):
    """Credit an account on the local ledger."""
    try:
        service = _load_service(ctx)
        if not isinstance(service.ledger, InMemoryLedger):
            raise click.ClickException("Funding is only available on the local ledger.")
        target = account or service.custody_account
        service.ledger.deposit(target, amount)
        _save_service(ctx, service)
        _emit(ctx, {"account": target, "balance": service.ledger.balance_of(target)}, "Funded")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


@ledger.command("balance")
@click.argument("account", required=False)
@click.pass_context
def ledger_balance(ctx: click.Context, account: Optional[str]):
    """Show an account balance, or the custody summary when no account is given."""
    try:
        service = _load_service(ctx)
        if account:
            _emit(ctx, {"account": account, "balance": service.ledger.balance_of(account)}, "Balance")
        else:
            _emit(ctx, service.summary(), "Custody")
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)


# ============================================================================
# Configuration
# ============================================================================

@cli.group("config")
def config_group():
    """Configuration commands"""
    pass


@config_group.command("show")
@click.option("--section", help="Return only a specific configuration section.")
@click.option("--key", help="Return a single config value via dot-notation (e.g., pool.interval).")
@click.pass_context
def config_show(ctx: click.Context, section: Optional[str], key: Optional[str]):
    """Display current configuration for the selected environment."""
    try:
        manager = _config(ctx)
    except VestingError as exc:
        _handle_cli_error(exc)
        return
    if key:
        value = manager.get(key)
        if value is None:
            raise click.ClickException(f"Unknown configuration key '{key}'.")
        payload = {"key": key, "value": value, "environment": manager.environment.value}
    elif section:
        section_data = manager.get_section(section)
        if section_data is None:
            raise click.ClickException(f"Configuration section '{section}' not found.")
        payload = {"section": section, "config": section_data}
    else:
        payload = manager.to_dict()
    _emit(ctx, payload, "Configuration")


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == '__main__':
    main()
