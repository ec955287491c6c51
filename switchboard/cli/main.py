"""Main CLI entry point for llm-switchboard."""

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from switchboard.cli.commands import config, test
from switchboard.core.config import Config, ConfigValueError
from switchboard.core.logging import configure_root_logging
from switchboard.runtime import build_runtime

app = typer.Typer(
    name="swb",
    help="LLM Switchboard CLI - route chat requests across LLM providers",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config.app, name="config", help="Configuration management")
app.add_typer(test.app, name="test", help="Test commands")


def load_config_or_exit(console: Console) -> Config:
    try:
        return Config.load()
    except ConfigValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from e


@app.command()
def version() -> None:
    """Show version information."""
    from switchboard import __version__

    console = Console()
    console.print(f"[bold cyan]swb[/bold cyan] version [green]{__version__}[/green]")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """LLM Switchboard CLI."""
    if verbose:
        configure_root_logging("DEBUG")
        logging.getLogger("switchboard").setLevel(logging.DEBUG)


@app.command()
def start(
    host: str = typer.Option(None, "--host", help="Override host"),
    port: int = typer.Option(None, "--port", help="Override port"),
) -> None:
    """Start the HTTP server."""
    import uvicorn

    from switchboard.main import app as fastapi_app

    console = Console()
    cfg = load_config_or_exit(console)
    configure_root_logging(cfg.log_level)
    fastapi_app.state.config = cfg

    server_host = host or cfg.host
    server_port = port or cfg.port

    table = Table(title="LLM Switchboard Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Host", server_host)
    table.add_row("Port", str(server_port))
    table.add_row("Default provider", cfg.default_provider or "(automatic)")
    table.add_row("Max concurrent requests", str(cfg.max_concurrent_requests))
    table.add_row("Retry", "enabled" if cfg.retry_enabled else "disabled")
    table.add_row("Settings file", str(cfg.settings_path))
    console.print(table)

    uvicorn.run(
        fastapi_app,
        host=server_host,
        port=server_port,
        log_level=cfg.log_level.lower(),
    )


@app.command()
def providers() -> None:
    """List providers with their configuration state."""
    console = Console()
    cfg = load_config_or_exit(console)

    async def collect() -> list[dict]:
        runtime = build_runtime(cfg)
        try:
            await runtime.manager.initialize()
            return runtime.registry.get_registered_providers()
        finally:
            await runtime.aclose()

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Initialized")
    table.add_column("Configured")
    table.add_column("Default model", style="green")
    table.add_column("Base URL")
    for provider in asyncio.run(collect()):
        name = provider["id"] + (" [bold](default)[/bold]" if provider["is_default"] else "")
        table.add_row(
            name,
            "✅" if provider["initialized"] else "❌",
            "✅" if provider["configured"] else "❌",
            provider["config"].get("default_model", ""),
            provider["config"].get("base_url", ""),
        )
    console.print(table)


@app.command()
def status() -> None:
    """Initialize every provider, probe it once and show the result."""
    console = Console()
    cfg = load_config_or_exit(console)

    async def collect() -> dict:
        runtime = build_runtime(cfg)
        try:
            await runtime.manager.initialize()
            await runtime.health_monitor.run_once()
            return runtime.get_system_status()
        finally:
            await runtime.aclose()

    system_status = asyncio.run(collect())
    table = Table(title="Provider Status")
    table.add_column("Provider", style="cyan")
    table.add_column("Connected")
    table.add_column("Failures")
    table.add_column("Last error", style="red")
    for provider_id, health in system_status["health"].items():
        table.add_row(
            provider_id,
            "✅" if health["connected"] else "❌",
            str(health["consecutive_failures"]),
            health["last_error"] or "",
        )
    console.print(table)
    registry = system_status["registry"]
    console.print(
        f"📊 {registry['initialized']}/{registry['registered']} initialized, "
        f"{registry['configured']} configured, {registry['healthy']} healthy; "
        f"default: [green]{registry['default_provider'] or 'none'}[/green]"
    )


if __name__ == "__main__":
    app()
