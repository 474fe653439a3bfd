"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from poolwatch import __version__


@click.group()
@click.version_option(version=__version__, prog_name="poolwatch")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """PoolWatch — per-session memory snapshots around server commands."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from poolwatch.cli.check import check  # noqa: F811
    from poolwatch.cli.replay import replay  # noqa: F811

    main.add_command(check)
    main.add_command(replay)


_register_commands()
