"""Common Typer options shared across CLI commands."""

import typer


def blob_argument(help_text: str = "Blob name within the configured container") -> typer.Argument:
    return typer.Argument(..., help=help_text)


def timeout_option(help_text: str = "Seconds to wait for the lease (default: forever)") -> typer.Option:
    """Create a standard lease timeout option.

    Args:
        help_text: Custom help text

    Returns:
        Configured Typer Option
    """
    return typer.Option(None, "--timeout", "-t", min=0, help=help_text)


def yes_option(help_text: str = "Skip confirmation prompt") -> typer.Option:
    return typer.Option(False, "--yes", "-y", help=help_text)
