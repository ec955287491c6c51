"""Configuration commands for the swb CLI."""

import typer
from rich.console import Console
from rich.table import Table

from switchboard.core.config.schema import ConfigSchema
from switchboard.core.config.validation import validate_all

app = typer.Typer(help="Configuration management")


@app.command()
def docs() -> None:
    """Print the environment variable reference as Markdown."""
    typer.echo(ConfigSchema.generate_markdown_docs())


@app.command()
def validate() -> None:
    """Validate every environment variable the switchboard reads."""
    console = Console()
    errors = validate_all()
    if not errors:
        console.print("[green]✅ Configuration is valid[/green]")
        return

    table = Table(title="Configuration errors")
    table.add_column("Variable", style="cyan")
    table.add_column("Value")
    table.add_column("Problem", style="red")
    for error in errors:
        table.add_row(error.env_var, repr(error.value), error.message)
    console.print(table)
    raise typer.Exit(1)
