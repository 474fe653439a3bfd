"""CLI command: poolwatch replay <CONFIG> <COMMAND>... — run one test session."""

from __future__ import annotations

import sys

import click
from rich.markup import escape
from rich.table import Table

from poolwatch.cli._common import console, load_or_exit
from poolwatch.hooks import HookRegistry
from poolwatch.session.manager import PoolSessionManager
from poolwatch.session.models import SessionState


def _noop() -> None:
    return None


@click.command()
@click.argument("config_path", metavar="CONFIG", type=click.Path(exists=True, dir_okay=False))
@click.argument("commands", metavar="COMMAND...", nargs=-1)
def replay(config_path: str, commands: tuple[str, ...]) -> None:
    """Run an in-process session through COMMANDs and write its pool log.

    Each COMMAND is a command line such as "RETR file.txt"; only the first
    word selects the event category. Useful for checking that PoolLogs is
    writable with the server's privileges.
    """
    config = load_or_exit(config_path)

    hooks = HookRegistry()
    manager = PoolSessionManager(config)
    state = manager.start(hooks)

    if state is SessionState.DISABLED:
        console.print(
            f"[yellow]Diagnostics disabled:[/yellow] {escape(manager.session.disabled_reason)}",
            soft_wrap=True,
        )
        sys.exit(1)

    for line in commands:
        argv = line.split()
        if not argv:
            continue
        hooks.dispatch(argv[0], argv, _noop)
    hooks.exit()

    session = manager.session
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("PID", str(session.pid))
    table.add_row("Commands", str(len(commands)))
    table.add_row("Records written", str(session.records_written))
    table.add_row("Records dropped", str(session.records_dropped))
    table.add_row("Status", session.state.value)
    console.print(table)

    click.echo(str(session.log_path))
