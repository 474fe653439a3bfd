"""Helpers shared by CLI commands."""

from __future__ import annotations

import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from poolwatch.config import PoolWatchConfig
from poolwatch.errors import ConfigurationError, ProvisioningError

console = Console(stderr=True)


def load_or_exit(path: str) -> PoolWatchConfig:
    """Load a config file, printing the error and exiting 1 on failure."""
    try:
        return PoolWatchConfig.load(path)
    except (ConfigurationError, ProvisioningError) as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}", soft_wrap=True)
        sys.exit(1)


def config_table(config: PoolWatchConfig) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    table.add_row("PoolEngine", "on" if config.engine else "off")
    table.add_row("PoolEvents", " ".join(config.events.names()))
    table.add_row("PoolLogs", str(config.log_dir) if config.log_dir else "[dim]unset[/dim]")
    table.add_row("PoolPayload", " ".join(config.payload))
    return table
