"""CLI commands: netwarden criteria list|add|remove."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from netwarden.cli import load_config
from netwarden.config import NetwardenConfig
from netwarden.engine.models import UnblockReport
from netwarden.engine.runtime import open_engine
from netwarden.storage.db import get_db
from netwarden.storage.repos import CriteriaRepo

console = Console()


@click.group()
def criteria() -> None:
    """Manage blocking strings."""


@criteria.command("list")
@click.pass_context
def list_criteria(ctx: click.Context) -> None:
    """Show the configured blocking strings."""
    config = load_config(ctx)
    values = asyncio.run(_list(config))
    if not values:
        console.print("[dim]No blocking strings.[/dim]")
        return
    for value in values:
        console.print(f"  {value}")


@criteria.command("add")
@click.argument("value")
@click.pass_context
def add_criterion(ctx: click.Context, value: str) -> None:
    """Add a blocking string."""
    if not value.strip():
        raise click.BadParameter("must not be empty", param_hint="VALUE")
    config = load_config(ctx)
    if asyncio.run(_add(config, value)):
        console.print(f"[green]Added[/green] {value}")
    else:
        console.print(f"[yellow]Already exists:[/yellow] {value}")
        raise SystemExit(1)


@criteria.command("remove")
@click.argument("value")
@click.pass_context
def remove_criterion(ctx: click.Context, value: str) -> None:
    """Remove a blocking string and unblock the IPs it matched."""
    config = load_config(ctx)
    report = asyncio.run(_remove(config, value))
    console.print(f"[green]Removed[/green] {value}")
    for ip in report.unblocked:
        console.print(f"  unblocked {ip}")
    for ip, error in report.failed.items():
        console.print(f"  [red]failed[/red] {ip}: {error}")
    if not report.ok:
        raise SystemExit(1)


async def _list(config: NetwardenConfig) -> list[str]:
    db = await get_db(config.db_path, seed_criteria=config.seed_criteria)
    try:
        return await CriteriaRepo(db).list_all()
    finally:
        await db.close()


async def _add(config: NetwardenConfig, value: str) -> bool:
    db = await get_db(config.db_path, seed_criteria=config.seed_criteria)
    try:
        return await CriteriaRepo(db).add(value)
    finally:
        await db.close()


async def _remove(config: NetwardenConfig, value: str) -> UnblockReport:
    engine = await open_engine(config)
    try:
        return await engine.control.remove_criterion(value)
    finally:
        await engine.close()
