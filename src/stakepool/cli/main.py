#!/usr/bin/env python3
"""
stakepool CLI - scenario replay and preset inspection

Commands:
- presets: list the built-in pool presets
- simulate: replay a YAML/JSON scenario against an in-memory pool
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stakepool.core import config as pool_config
from stakepool.core.exceptions import StakePoolError
from stakepool.core.logging_config import setup_logging
from stakepool.staking.scenario import Scenario, run_scenario

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


@click.group()
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option(
    "--log-level",
    default=pool_config.LOG_LEVEL,
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level for pool operations",
)
@click.option("--log-file", default=pool_config.LOG_FILE, help="Write JSON logs to this file")
@click.option("--verbose", is_flag=True, help="Also print JSON logs to the console")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, log_level: str, log_file: str | None, verbose: bool):
    """Time-windowed staking pool tools."""
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json_output
    setup_logging(
        name="stakepool",
        log_file=log_file,
        level=log_level if verbose or log_file else "WARNING",
        environment=pool_config.ENVIRONMENT,
        enable_console=verbose,
    )


@cli.command("presets")
@click.pass_context
def presets(ctx: click.Context):
    """
    List built-in pool presets.

    Example:
        stakepool presets
        stakepool --json-output presets
    """
    data = {name: preset.to_dict() for name, preset in sorted(pool_config.PRESETS.items())}
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Pool Presets", box=box.ROUNDED)
    table.add_column("Preset", style="cyan")
    table.add_column("Stake", style="white")
    table.add_column("Reward", style="white")
    table.add_column("Window", style="yellow")
    table.add_column("Rate / tick", style="green", justify="right")
    table.add_column("Lock", justify="right")
    for name, preset in data.items():
        table.add_row(
            name,
            preset["stake_asset"],
            preset["reward_asset"],
            f"[{preset['window_start']}, {preset['window_end']})",
            str(preset["reward_rate_per_tick"]),
            str(preset["lock_duration"]),
        )
    console.print(table)


def _render_report(report: dict[str, Any]) -> None:
    pool = report["pool"]
    console.print(
        Panel(
            f"[bold]Status:[/] {pool['status']}   [bold]Tick:[/] {pool['current_tick']}\n"
            f"[bold]Window:[/] [{pool['window_start']}, {pool['window_end']})   "
            f"[bold]Rate:[/] {pool['reward_rate_per_tick']}/tick   [bold]Lock:[/] {pool['lock_duration']}\n"
            f"[bold]Total staked:[/] {pool['total_staked']}   "
            f"[bold]Treasury:[/] {pool['treasury_balance']}   "
            f"[bold]Acc/share:[/] {pool['acc_reward_per_share']}",
            title=f"Pool {pool['name']}",
            border_style="cyan",
        )
    )

    steps = Table(title="Steps", box=box.SIMPLE)
    steps.add_column("Tick", justify="right")
    steps.add_column("Action", style="cyan")
    steps.add_column("User")
    steps.add_column("Amount", justify="right")
    steps.add_column("Outcome")
    for step in report["steps"]:
        if step["ok"]:
            result = step.get("result")
            outcome = "[green]ok[/]" if result is None else f"[green]{result}[/]"
        else:
            outcome = f"[red]{step['error']}[/]"
        steps.add_row(str(step["tick"]), step["action"], step["user"], str(step.get("amount", "")), outcome)
    console.print(steps)

    accounts = Table(title="Accounts", box=box.ROUNDED)
    accounts.add_column("User", style="cyan")
    accounts.add_column("Staked", justify="right")
    accounts.add_column("Pending", justify="right", style="yellow")
    accounts.add_column("Reward paid", justify="right", style="green")
    accounts.add_column("Wallet stake", justify="right")
    for user, info in report["accounts"].items():
        accounts.add_row(
            user,
            str(info["amount"]),
            str(info["pending_reward"]),
            str(info["reward_balance"]),
            str(info["stake_balance"]),
        )
    console.print(accounts)


@cli.command("simulate")
@click.argument("scenario_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--strict", is_flag=True, help="Abort on the first rejected action")
@click.pass_context
def simulate(ctx: click.Context, scenario_file: str, strict: bool):
    """
    Replay a scenario file against an in-memory pool.

    Example:
        stakepool simulate scenarios/proportional.yaml
        stakepool --json-output simulate scenarios/proportional.yaml --strict
    """
    try:
        scenario = Scenario.load(scenario_file)
        report = run_scenario(scenario, strict=strict)
    except (StakePoolError, ValueError) as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(report, indent=2))
        return
    _render_report(report)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
