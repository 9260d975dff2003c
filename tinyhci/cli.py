"""Thin CLI wrapper for tinyhci.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from tinyhci import __version__
from tinyhci.config import get_settings, print_settings_json

if TYPE_CHECKING:
    from tinyhci.boards.registry import BoardRegistry

app = typer.Typer(
    name="tinyhci",
    help="tinyhci - hardware-in-the-loop CI for TinyGo boards",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tinyhci version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route all log records through a rich handler at level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """tinyhci - hardware-in-the-loop CI for TinyGo boards."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    boards_file = str(settings.boards_file) if settings.boards_file else "(built-in)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Repository:[/bold]")
    repo = f"{settings.github_owner}/{settings.github_repo}"
    console.print(f"  Repository:          {repo}")
    console.print(f"  GitHub App:          {settings.github_configured}")
    console.print(f"  Webhook secret set:  {bool(settings.webhook_secret)}")
    console.print()
    console.print("[bold]Boards:[/bold]")
    console.print(f"  Boards file:         {boards_file}")
    console.print(f"  Toolchains dir:      {settings.toolchains_dir}")
    console.print(f"  Settle seconds:      {settings.settle_seconds}")
    console.print(f"  Run on push:         {settings.run_on_push}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Artifact timeout:    {settings.artifact_timeout}")
    console.print(f"  Flash timeout:       {settings.flash_timeout}")
    console.print(f"  Test timeout:        {settings.test_timeout}")
    console.print()
    console.print("[bold]Server:[/bold]")
    console.print(f"  Listen:              {settings.host}:{settings.port}")
    console.print(f"  Log level:           {settings.log_level}")


boards_app = typer.Typer(help="Inspect the board registry")
app.add_typer(boards_app, name="boards")


def _load_registry(path: Path | None) -> "BoardRegistry":
    from tinyhci.boards.registry import RegistryLoadError, load_registry

    if path is None:
        path = get_settings().boards_file
    try:
        return load_registry(path)
    except RegistryLoadError as e:
        console.print(f"[red]Failed to load boards: {e}[/red]")
        raise typer.Exit(code=1) from None


BoardsFileOption = Annotated[
    Path | None,
    typer.Option("--file", "-f", help="Board registry YAML (default: configured)"),
]


@boards_app.command("list")
def boards_list(
    boards_file: BoardsFileOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List registered boards."""
    registry = _load_registry(boards_file)

    if json_output:
        output = [b.model_dump(mode="json") for b in registry]
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Found {len(registry)} board(s):[/bold]")
    console.print()
    for b in registry:
        console.print(f"  [green]{b.name}[/green]")
        console.print(f"    Name: {b.display_name}")
        console.print(f"    Target: {b.target}")
        console.print(f"    Port: {b.port} @ {b.baud}")
        console.print()


@boards_app.command("show")
def boards_show(
    name: Annotated[str, typer.Argument(help="Board name to show")],
    boards_file: BoardsFileOption = None,
) -> None:
    """Show details of a board, including its rendered commands."""
    from tinyhci.boards.registry import BoardNotFoundError

    registry = _load_registry(boards_file)
    try:
        board = registry.resolve(name)
    except BoardNotFoundError:
        console.print(f"[red]Board not found: {name}[/red]")
        console.print(f"Registered boards: {', '.join(registry.names())}")
        raise typer.Exit(code=1) from None

    data = board.model_dump(mode="json")
    data["flash_command"] = " ".join(board.render_flash_command())
    test_command = board.render_test_command()
    data["test_command"] = " ".join(test_command) if test_command else None
    typer.echo(json.dumps(data, indent=2))


@boards_app.command("test")
def boards_test(
    name: Annotated[str, typer.Argument(help="Board to flash and test")],
    sha: Annotated[
        str,
        typer.Option("--sha", help="Commit whose installed toolchain to use"),
    ],
    boards_file: BoardsFileOption = None,
) -> None:
    """Flash and test one board with an already installed toolchain.

    Runs outside the server; do not use while the server owns the boards.
    """
    import time

    from tinyhci.boards.driver import TinyGoBoardDriver
    from tinyhci.boards.registry import BoardNotFoundError

    settings = get_settings()
    configure_logging(settings.log_level)
    registry = _load_registry(boards_file)
    try:
        board = registry.resolve(name)
    except BoardNotFoundError:
        console.print(f"[red]Board not found: {name}[/red]")
        raise typer.Exit(code=1) from None

    driver = TinyGoBoardDriver(
        settings.toolchains_dir,
        flash_timeout=settings.flash_timeout,
        test_timeout=settings.test_timeout,
    )

    console.print(f"Flashing {board.name} with toolchain {sha[:12]}...")
    flash = driver.flash_sync(board, sha)
    if not flash.success:
        console.print(f"[red]✗ Flash failed ({flash.code})[/red]")
        console.print(flash.output)
        raise typer.Exit(code=1)

    settle = (
        board.settle_seconds
        if board.settle_seconds is not None
        else settings.settle_seconds
    )
    time.sleep(settle)

    console.print(f"Testing {board.name}...")
    result = driver.test_sync(board)
    console.print(result.output)
    if not result.success:
        console.print(f"[red]✗ Tests failed ({result.code})[/red]")
        raise typer.Exit(code=1)
    console.print("[green]✓ Tests passed[/green]")


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default: configured)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port (default: configured)"),
    ] = None,
) -> None:
    """Run the webhook server and board worker."""
    import uvicorn

    from web.app import create_app

    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.webhook_secret:
        console.print(
            "[yellow]TINYHCI_WEBHOOK_SECRET is not set; "
            "all webhook deliveries will be rejected[/yellow]"
        )

    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    app()
