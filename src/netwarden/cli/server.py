"""CLI command: netwarden server — dashboard API plus the scan loop."""

from __future__ import annotations

import click
import uvicorn
from rich.console import Console

from netwarden.cli import load_config

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 3000).",
)
@click.option("--no-scan", is_flag=True, help="Serve the API without scanning.")
@click.pass_context
def server(ctx: click.Context, port: int | None, no_scan: bool) -> None:
    """Start the dashboard API and the enforcement scan loop."""
    config = load_config(ctx)
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]Netwarden[/bold] API starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}[/cyan]"
    )
    if no_scan:
        console.print("  [dim]Scan loop disabled[/dim]")
    console.print()

    from netwarden.web.app import create_app

    app = create_app(config, run_scanner=not no_scan)
    uvicorn.run(
        app,
        host=config.web_host,
        port=config.web_port,
        log_level="debug" if config.verbose else "info",
    )
