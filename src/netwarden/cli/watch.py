"""CLI command: netwarden watch — run the scan loop in the foreground."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

import click
from rich.console import Console

from netwarden.cli import load_config
from netwarden.config import NetwardenConfig
from netwarden.engine.models import BlockRule
from netwarden.engine.runtime import open_engine

console = Console(stderr=True)


@click.command()
@click.option("--interval", type=float, default=None, help="Seconds between scans.")
@click.option("--target", default=None, help="Process name substring to police.")
@click.pass_context
def watch(ctx: click.Context, interval: float | None, target: str | None) -> None:
    """Scan connections and block matching destinations until interrupted."""
    config = load_config(ctx)
    if interval is not None:
        config.poll_interval = interval
    if target:
        config.target_process = target

    console.print(
        f"[bold]Netwarden[/bold] watching processes matching "
        f"[cyan]{config.target_process}[/cyan] every {config.poll_interval:g}s"
    )
    console.print(f"  Ledger: {config.db_path}")
    console.print(f"  IP ranges: {config.ranges_path}")
    console.print("  Press Ctrl+C to stop.\n")

    def on_block(rule: BlockRule) -> None:
        remote = rule.connection_detail.get("remote", {})
        label = remote.get("address", rule.ip)
        console.print(
            f"  [red]⛔ BLOCKED[/red] {rule.ip} ({label}), "
            f"matched [yellow]{rule.block_string}[/yellow]"
        )

    asyncio.run(_watch(config, on_block))


async def _watch(
    config: NetwardenConfig, on_block: Callable[[BlockRule], None]
) -> None:
    engine = await open_engine(config, on_block=on_block)
    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        console.print("\n[dim]Stopping...[/dim]")
        engine.scanner.stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _signal_handler)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler; Ctrl+C still raises
            pass

    try:
        await engine.scanner.run()
    finally:
        rules = await engine.rules.list_all()
        await engine.close()
        console.print(f"\n[bold]{len(rules)}[/bold] rule(s) in the ledger")
