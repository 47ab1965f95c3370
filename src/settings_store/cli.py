"""CLI for settings-store."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler

from .config import StoreConfig, get_config_help_message, resolve_config
from .errors import StoreError
from .mcp_server import serve_stdio
from .models import Theme
from .server import SqlServer

T = TypeVar("T")

app = typer.Typer(
    name="settings-store",
    help="Settings Store - encrypted local storage for user settings",
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr; stdout belongs to the MCP stdio channel."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def get_config(config_dir: Optional[Path], key_env: Optional[str], require_key: bool = True) -> StoreConfig:
    """Resolve config or exit with error."""
    config = resolve_config(config_dir, key_env)
    if require_key and not config.has_key():
        err_console.print("[red]Error:[/red] Encryption key not configured.")
        err_console.print("")
        err_console.print(get_config_help_message(config))
        raise typer.Exit(1)
    return config


def run_with_store(config: StoreConfig, action: Callable[[SqlServer], Awaitable[T]]) -> T:
    """Open the store, run ``action`` against it and close it again."""

    async def runner() -> T:
        server = SqlServer()
        await server.initialize(config.config_dir, config.key)
        try:
            return await action(server)
        finally:
            await server.close()

    try:
        return asyncio.run(runner())
    except StoreError as e:
        err_console.print(f"[red]{e.kind}:[/red] {e}")
        raise typer.Exit(1)


def render_user(info: Optional[dict[str, Any]], output_format: str) -> str:
    """Render a user record for the terminal."""
    if output_format == "json":
        return json.dumps(info, indent=2, ensure_ascii=False)
    if info is None:
        return "No user settings stored yet."
    return "\n".join(f"{k}: {v}" for k, v in info.items())


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    """Encrypted settings store."""
    setup_logging(verbose)


@app.command("serve")
def serve(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", "-c", help="Config directory"),
    key_env: Optional[str] = typer.Option(None, "--key-env", help="Environment variable holding the key"),
):
    """Own the database and serve it to a client over MCP stdio."""
    config = get_config(config_dir, key_env)
    try:
        asyncio.run(serve_stdio(config.config_dir, config.key))
    except StoreError as e:
        err_console.print(f"[red]{e.kind}:[/red] {e}")
        raise typer.Exit(1)


@app.command("path")
def show_path(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", "-c", help="Config directory"),
    key_env: Optional[str] = typer.Option(None, "--key-env", help="Environment variable holding the key"),
):
    """Show where the database lives."""
    config = get_config(config_dir, key_env, require_key=False)
    db_path = config.db_path()
    console.print(f"Config directory: {config.config_dir} [dim]({config.config_source})[/dim]")
    console.print(f"Database: {db_path}")
    console.print(f"Exists: {'yes' if db_path.exists() else 'no'}")
    console.print(f"Key: {'set' if config.has_key() else 'missing'} [dim](${config.key_env})[/dim]")


@app.command("show")
def show_user(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", "-c", help="Config directory"),
    key_env: Optional[str] = typer.Option(None, "--key-env", help="Environment variable holding the key"),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (json|text)"),
):
    """Show the stored user settings."""
    config = get_config(config_dir, key_env)
    info = run_with_store(config, lambda server: server.get_user_info())
    console.print(render_user(info, output_format.lower()), markup=False, highlight=False)


@app.command("set-theme")
def set_theme(
    theme: Theme = typer.Argument(..., help="Theme to store"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", "-c", help="Config directory"),
    key_env: Optional[str] = typer.Option(None, "--key-env", help="Environment variable holding the key"),
):
    """Update the stored theme."""
    config = get_config(config_dir, key_env)

    async def apply(server: SqlServer) -> bool:
        if await server.set_user_theme(theme):
            return True
        # First run: no record to patch yet
        await server.update_or_create_user({"theme": theme.value})
        return False

    updated = run_with_store(config, apply)
    verb = "Updated" if updated else "Created"
    console.print(f"[green]{verb}:[/green] theme = {theme.value}")


@app.command("remove")
def remove_db(
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", "-c", help="Config directory"),
    key_env: Optional[str] = typer.Option(None, "--key-env", help="Environment variable holding the key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete the database and its WAL side files."""
    config = get_config(config_dir, key_env)
    if not yes and not typer.confirm(f"Delete {config.db_path()} and its side files?"):
        raise typer.Exit(0)

    run_with_store(config, lambda server: server.remove_db())
    console.print(f"[green]Removed:[/green] {config.db_path()}")


if __name__ == "__main__":
    app()
