"""CLI commands: netwarden rules / netwarden unblock."""

from __future__ import annotations

import asyncio
import datetime

import click
from rich.console import Console
from rich.table import Table

from netwarden.cli import load_config
from netwarden.config import NetwardenConfig
from netwarden.engine.models import BlockRule
from netwarden.engine.runtime import open_engine
from netwarden.firewall.base import FirewallCommandError
from netwarden.storage.db import get_db
from netwarden.storage.repos import RuleRepo

console = Console()


@click.command()
@click.pass_context
def rules(ctx: click.Context) -> None:
    """List block rules recorded in the ledger."""
    config = load_config(ctx)
    block_rules = asyncio.run(_list_rules(config))

    if not block_rules:
        console.print("[dim]No block rules.[/dim]")
        return

    table = Table(title="Block rules")
    table.add_column("Rule")
    table.add_column("IP", style="cyan")
    table.add_column("Matched", style="yellow")
    table.add_column("Destination")
    table.add_column("Process", style="dim")
    table.add_column("Created", style="dim")
    for rule in block_rules:
        detail = rule.connection_detail
        table.add_row(
            rule.rule_name,
            rule.ip,
            rule.block_string,
            str(detail.get("remote", {}).get("address", "")),
            str(detail.get("processName", "")),
            datetime.datetime.fromtimestamp(rule.timestamp).strftime(
                "%Y-%m-%d %H:%M:%S"
            ),
        )
    console.print(table)


@click.command()
@click.argument("rule_name")
@click.pass_context
def unblock(ctx: click.Context, rule_name: str) -> None:
    """Remove a block rule by name (e.g. Block_IP_1.2.3.4)."""
    config = load_config(ctx)
    try:
        found = asyncio.run(_unblock(config, rule_name))
    except FirewallCommandError as exc:
        console.print(f"[red]Failed to remove {rule_name}:[/red] {exc}")
        raise SystemExit(1)

    if not found:
        console.print(f"[yellow]Rule not found:[/yellow] {rule_name}")
        raise SystemExit(1)
    console.print(f"[green]Unblocked[/green] {rule_name}")


async def _list_rules(config: NetwardenConfig) -> list[BlockRule]:
    db = await get_db(config.db_path, seed_criteria=config.seed_criteria)
    try:
        return await RuleRepo(db).list_all()
    finally:
        await db.close()


async def _unblock(config: NetwardenConfig, rule_name: str) -> bool:
    engine = await open_engine(config)
    try:
        return await engine.control.unblock_by_rule_name(rule_name)
    finally:
        await engine.close()
