"""CLI — Daemon management commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Start and inspect the pihub daemon.")
console = Console()


@app.command("start")
def start(
    host: Optional[str] = typer.Option(None, help="Host to bind to (default: from config)."),
    port: Optional[int] = typer.Option(None, help="Port to listen on (default: from config)."),
    config: Annotated[
        Optional[Path], typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    backend: Optional[str] = typer.Option(
        None, help="Hardware backend: auto, raspberry_pi or mock."
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level."),
) -> None:
    """Start the pihub daemon."""
    from pihub.api.server import create_app
    from pihub.config import Settings

    settings = Settings.load(config_file=config)
    if host is not None:
        settings.server.host = host
    if port is not None:
        settings.server.port = port
    if backend is not None:
        if backend not in ("auto", "raspberry_pi", "mock"):
            console.print(f"[red]Unknown backend '{backend}'.[/red]")
            raise typer.Exit(2)
        settings.hardware.backend = backend  # type: ignore[assignment]
    if log_level is not None:
        settings.logging.level = log_level  # type: ignore[assignment]

    bind_host, bind_port = settings.server.host, settings.server.port
    console.print(f"[bold green]Starting pihub on {bind_host}:{bind_port}[/bold green]")

    app_instance = create_app(settings=settings)

    uvicorn.run(
        app_instance,
        host=bind_host,
        port=bind_port,
        log_level=log_level or settings.server.log_level,
    )


@app.command("status")
def status(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3141),
) -> None:
    """Check daemon status."""
    import httpx

    try:
        resp = httpx.get(f"http://{host}:{port}/health", timeout=5.0)
        data = resp.json()
        table = Table(title="pihub Status")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for k, v in data.items():
            table.add_row(str(k), str(v))
        console.print(table)
    except Exception as exc:
        console.print(f"[red]Daemon unreachable: {exc}[/red]")
        raise typer.Exit(1)
