"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from netwarden import __version__
from netwarden.config import ConfigError, NetwardenConfig


@click.group()
@click.version_option(version=__version__, prog_name="netwarden")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Netwarden — block outbound connections by resolved destination."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config(ctx: click.Context) -> NetwardenConfig:
    """Config for the current invocation; ConfigError becomes a usage error."""
    try:
        config = NetwardenConfig.load(ctx.obj.get("config_path"))
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc
    config.verbose = bool(ctx.obj.get("verbose"))
    return config


def _register_commands() -> None:
    from netwarden.cli.criteria import criteria  # noqa: F811
    from netwarden.cli.rules import rules, unblock  # noqa: F811
    from netwarden.cli.server import server  # noqa: F811
    from netwarden.cli.watch import watch  # noqa: F811

    main.add_command(watch)
    main.add_command(server)
    main.add_command(rules)
    main.add_command(unblock)
    main.add_command(criteria)


_register_commands()
