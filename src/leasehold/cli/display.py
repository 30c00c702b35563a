"""Consolidated display utilities for CLI commands."""
from typing import Any

from rich.console import Console
from rich.table import Table

console = Console()


def success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓ {message}[/green]")


def warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]⚠️  {message}[/yellow]")


def error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]❌ {message}[/red]")


def info(message: str) -> None:
    """Print info message."""
    console.print(message)


def section(title: str) -> None:
    """Print section header."""
    console.print(f"\n[bold]{title}[/bold]")


def info_dict(data: dict[str, Any], indent: str = "  ") -> None:
    """Print a dictionary as indented key-value pairs."""
    for key, value in data.items():
        console.print(f"{indent}{key}: {value}")


def references_table(blob_name: str, references: dict) -> None:
    """Print attached references as a table."""
    table = Table(title=f"References on {blob_name}")
    table.add_column("Reference ID", style="cyan", no_wrap=True)
    table.add_column("Label")
    for reference_id, label in sorted(references.items(), key=lambda item: str(item[0])):
        table.add_row(str(reference_id), label)
    console.print(table)
