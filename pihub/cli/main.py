"""pihub CLI — Entry point.

Usage:
    pihub daemon start
    pihub daemon status
    pihub modules list
    pihub modules sources
    pihub modules init <file.yaml|file.json>
    pihub modules act <module> <action> [--config JSON]
"""

from __future__ import annotations

import typer
from rich.console import Console

from pihub.cli.commands import daemon, modules

app = typer.Typer(
    name="pihub",
    help="pihub — Network-addressable hardware hub for Raspberry Pi class boards.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(daemon.app, name="daemon")
app.add_typer(modules.app, name="modules")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
