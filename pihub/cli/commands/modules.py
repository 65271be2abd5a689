"""CLI — Module commands: declare the module set and run actions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from pihub.client import PiHubClient, PiHubClientError

app = typer.Typer(help="Initialize modules and invoke their actions.")
console = Console()


def _client(host: str, port: int) -> PiHubClient:
    return PiHubClient(base_url=f"http://{host}:{port}", timeout=30.0)


def _fail(exc: Exception) -> None:
    if isinstance(exc, PiHubClientError):
        console.print(f"[red]Error ({exc.code or exc.status_code}): {exc}[/red]")
    else:
        console.print(f"[red]Error: {exc}[/red]")
    raise typer.Exit(1)


def load_modules_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON module file.

    Accepts either ``{"modules": {name: spec}}`` (the request body) or the
    bare ``{name: spec}`` mapping.
    """
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a mapping of modules.")
    modules = data.get("modules", data)
    if not isinstance(modules, dict):
        raise typer.BadParameter(f"'modules' in {path} must be a mapping.")
    return modules


@app.command("list")
def list_modules(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3141),
) -> None:
    """List the live modules."""
    try:
        with _client(host, port) as client:
            modules = client.list_modules()
    except Exception as exc:
        _fail(exc)

    table = Table(title="Live Modules")
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    table.add_column("State", style="green")
    table.add_column("Actions")

    for m in modules:
        table.add_row(
            m.get("name", ""),
            m.get("source", ""),
            m.get("state", ""),
            ", ".join(m.get("actions", [])),
        )
    console.print(table)


@app.command("sources")
def list_sources(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3141),
) -> None:
    """List the driver kinds the daemon can build."""
    try:
        with _client(host, port) as client:
            sources = client.list_sources()
    except Exception as exc:
        _fail(exc)

    for source in sources:
        console.print(source)


@app.command("init")
def init_modules(
    file: Path = typer.Argument(help="YAML or JSON file describing the modules.", exists=True),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3141),
) -> None:
    """Replace the daemon's module set with the one described in FILE."""
    modules = load_modules_file(file)
    try:
        with _client(host, port) as client:
            count = client.initialize(modules)
    except Exception as exc:
        _fail(exc)

    console.print(f"[bold green]{count} module(s) initialized[/bold green]")


@app.command("act")
def act(
    module: str = typer.Argument(help="Module name."),
    action: str = typer.Argument(help="Action name."),
    config: Optional[str] = typer.Option(None, "--config", help="Action payload as JSON."),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3141),
) -> None:
    """Run ACTION on MODULE and print the result."""
    payload: Any = None
    if config is not None:
        try:
            payload = json.loads(config)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"--config is not valid JSON: {exc}")

    try:
        with _client(host, port) as client:
            result = client.act(module, action, payload)
    except Exception as exc:
        _fail(exc)

    console.print(Syntax(json.dumps(result, indent=2), "json"))
