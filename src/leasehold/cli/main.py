"""leasehold CLI entry point."""

import logging

import typer

from .display import info, warning

# Create main CLI app
app = typer.Typer(
    name="leasehold",
    help="Leases, optimistic updates and reference counting for blob storage",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# Import sub-commands
from . import blob, config as config_cli, lease, refs  # noqa: E402

app.add_typer(refs.app, name="refs", help="External references attached to blobs")
app.add_typer(blob.app, name="blob", help="Inspect and delete blobs")
app.add_typer(lease.app, name="lease", help="Exclusive blob leases")
app.add_typer(config_cli.app, name="config", help="⚙️ Configure leasehold settings")


@app.callback()
def configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version():
    """Show leasehold version."""
    from .. import __version__

    info(f"leasehold version: {__version__}")


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        warning("\nInterrupted by user")
        raise typer.Exit(1)


if __name__ == "__main__":
    main()
