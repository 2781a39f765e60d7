#!/usr/bin/env python3
"""
Voucher CLI - vesting schedule tools

Commands:
- vested: vested amount of one schedule at an instant
- capability-id: content id of a capability or metadata key name
- simulate: deploy an in-memory system, create a multi-schedule position
  and redeem it at a random instant within a year
"""

from __future__ import annotations

import json
import logging
import random
import sys
import time

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from voucher.core import config
from voucher.core.exceptions import VoucherError, get_error_context
from voucher.core.identifiers import content_id, derive_address
from voucher.core.logging_config import setup_logging
from voucher.core.vesting import (
    DAY,
    LinearGranularity,
    Schedule,
    ScheduleSet,
    VestingKind,
    vested_amount,
)
from voucher.core.deployment import deploy_voucher_system

logger = logging.getLogger(__name__)
console = Console()

YEAR = 365 * DAY


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, extra={"event": "cli.error", **get_error_context(exc)})
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of tables")
@click.option("--log-level", default=config.LOG_LEVEL, show_default=True, help="Logging level")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, log_level: str):
    """Redeemable vesting positions."""
    setup_logging(
        name="voucher",
        log_file=config.LOG_FILE,
        level=log_level,
        environment=config.ENVIRONMENT,
    )
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json_output


@cli.command("vested")
@click.option("--amount", type=int, required=True, help="Schedule amount in smallest units")
@click.option("--kind", type=click.Choice(["linear", "staged"]), default="linear", show_default=True)
@click.option(
    "--granularity",
    type=click.Choice([g.name.lower() for g in LinearGranularity]),
    default="daily",
    show_default=True,
)
@click.option("--start", type=int, required=True, help="Start timestamp (unix seconds)")
@click.option("--end", type=int, default=None, help="End timestamp (linear only)")
@click.option("--at", "at", type=int, default=None, help="Evaluation instant (default: now)")
@click.pass_context
def vested(ctx: click.Context, amount: int, kind: str, granularity: str, start: int, end: int | None, at: int | None):
    """
    Compute the vested amount of a single schedule.

    Example:
        voucher vested --amount 100000 --granularity quarterly --start 0 --end 31536000 --at 7862400
    """
    try:
        if kind == "linear":
            schedule = Schedule.linear(amount, start, end, LinearGranularity[granularity.upper()])
        else:
            schedule = Schedule.staged(amount, start)
        ScheduleSet.of([schedule]).validate()
        instant = at if at is not None else int(time.time())
        result = vested_amount(schedule, instant)
    except VoucherError as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"schedule": schedule.to_dict(), "at": instant, "vested": result}, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Kind", kind)
    if kind == "linear":
        table.add_row("[bold cyan]Granularity", granularity)
    table.add_row("[bold cyan]Amount", f"{amount:,}")
    table.add_row("[bold cyan]At", str(instant))
    table.add_row("[bold green]Vested", f"{result:,}")
    console.print(Panel(table, title="[bold]Vested Amount", border_style="cyan"))


@cli.command("capability-id")
@click.argument("name")
def capability_id(name: str):
    """Print the content id of NAME (e.g. MINTER_ROLE)."""
    click.echo(content_id(name))


def _random_schedules(rng: random.Random, count: int, amount: int, start: int) -> list[Schedule]:
    schedules = []
    for _ in range(count):
        if rng.random() < 0.5:
            granularity = rng.choice(list(LinearGranularity))
            schedules.append(Schedule.linear(amount, start, start + YEAR, granularity))
        else:
            schedules.append(Schedule.staged(amount, start + rng.randint(0, YEAR)))
    return schedules


@cli.command("simulate")
@click.option("--schedules", "count", type=click.IntRange(1, 64), default=config.MAX_SCHEDULES, show_default=True)
@click.option("--amount", type=int, default=100_000, show_default=True, help="Amount per schedule")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible runs")
@click.pass_context
def simulate(ctx: click.Context, count: int, amount: int, seed: int | None):
    """
    Create a mixed-schedule position and redeem it once at a random instant.

    Example:
        voucher simulate --schedules 10 --seed 7
    """
    rng = random.Random(seed)
    start = int(time.time())
    admin = derive_address("simulate:admin")
    holder = derive_address("simulate:holder")

    system = deploy_voucher_system(admin, time_provider=lambda: start)
    schedule_set = ScheduleSet.of(_random_schedules(rng, count, amount, start))
    redeem_at = rng.randint(start, start + YEAR)

    try:
        system.fund(holder, schedule_set.escrowed_total)
        position_id = system.engine.create(holder, schedule_set, now=start)
        create_gas = system.engine.last_call.gas_used
        redeemable = system.engine.redeemable_amount(position_id, now=redeem_at)
        redeemed = system.engine.redeem(holder, position_id, now=redeem_at) if redeemable else 0
        redeem_gas = system.engine.last_call.gas_used if redeemable else 0
    except VoucherError as exc:
        _handle_cli_error(exc)
        return

    result = {
        "schedules": count,
        "escrowed_total": schedule_set.escrowed_total,
        "start": start,
        "redeem_at": redeem_at,
        "redeemed": redeemed,
        "create_gas": create_gas,
        "create_gas_limit": system.engine.create_gas_limit,
        "redeem_gas": redeem_gas,
        "redeem_gas_limit": system.engine.redeem_gas_limit,
    }

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(result, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Schedules", str(count))
    table.add_row("[bold cyan]Escrowed", f"{schedule_set.escrowed_total:,}")
    table.add_row("[bold cyan]Redeem offset", f"{(redeem_at - start) / DAY:.1f} days")
    table.add_row("[bold green]Redeemed", f"{redeemed:,}")
    table.add_row("[bold cyan]Create gas", f"{create_gas:,} / {system.engine.create_gas_limit:,}")
    table.add_row("[bold cyan]Redeem gas", f"{redeem_gas:,} / {system.engine.redeem_gas_limit:,}")
    console.print(Panel(table, title="[bold green]Simulation", border_style="green"))


def main():
    """Console script entry point."""
    return cli(obj={})


if __name__ == "__main__":
    sys.exit(main() or 0)
