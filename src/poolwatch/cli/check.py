"""CLI command: poolwatch check <CONFIG> — validate a configuration file."""

from __future__ import annotations

import click
from rich.markup import escape

from poolwatch.cli._common import config_table, console, load_or_exit


@click.command()
@click.argument("config_path", metavar="CONFIG", type=click.Path(exists=True, dir_okay=False))
def check(config_path: str) -> None:
    """Validate CONFIG and create the PoolLogs directory if needed."""
    config = load_or_exit(config_path)

    console.print(f"[bold]PoolWatch[/bold] configuration [cyan]{escape(config_path)}[/cyan]")
    console.print(config_table(config))

    if config.engine and config.log_dir is None:
        console.print(
            "\n[yellow]PoolEngine is on but PoolLogs is unset; "
            "sessions will run without diagnostics[/yellow]",
            soft_wrap=True,
        )
    else:
        console.print("\n[green]OK[/green]")
