"""Test commands for the swb CLI."""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from switchboard.clients.base import ConnectionResult
from switchboard.core.config import Config
from switchboard.runtime import build_runtime

app = typer.Typer(help="Test commands")


async def _probe(provider: str | None) -> dict[str, ConnectionResult]:
    runtime = build_runtime(Config.load())
    try:
        await runtime.manager.initialize()
        provider_ids = [provider] if provider else runtime.registry.live_provider_ids()
        results = {}
        for provider_id in provider_ids:
            client = runtime.registry.get_client(provider_id)
            if client is None:
                results[provider_id] = ConnectionResult(connected=False, error="Not initialized")
            else:
                results[provider_id] = await client.test_connection()
        return results
    finally:
        await runtime.aclose()


@app.command()
def connection(
    provider: str = typer.Option(None, "--provider", "-p", help="Only test this provider"),
) -> None:
    """Test provider connectivity."""
    console = Console()
    console.print("[bold cyan]Testing provider connectivity[/bold cyan]")
    console.print()

    results = asyncio.run(_probe(provider))

    table = Table(title="Connection test")
    table.add_column("Provider", style="cyan")
    table.add_column("Result")
    table.add_column("Latency", style="green")
    table.add_column("Error", style="red")
    for provider_id, result in results.items():
        table.add_row(
            provider_id,
            "✅" if result.connected else "❌",
            f"{result.latency_ms:.0f}ms" if result.connected else "",
            result.error or "",
        )
    console.print(table)

    if not any(result.connected for result in results.values()):
        console.print()
        console.print(
            Panel(
                "Set a provider API key (e.g. [cyan]OPENAI_API_KEY[/cyan]) or start LM Studio.",
                title="Next Steps",
                expand=False,
            )
        )
        raise typer.Exit(1)
