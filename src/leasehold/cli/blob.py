"""Blob commands."""

import typer

from .common_options import blob_argument, yes_option
from .display import info_dict, section, success, warning
from .utils import open_blob, reported_errors

app = typer.Typer(help="Inspect and delete blobs")


@app.command()
def show(blob: str = blob_argument()):
    """Show whether a blob exists and how many references it has."""
    stored = open_blob(blob, "blob show")
    with reported_errors():
        summary = stored.describe()
    section(f"Blob {blob}")
    info_dict(summary)


@app.command()
def delete(blob: str = blob_argument(), yes: bool = yes_option()):
    """Delete a blob, refusing while references are attached."""
    if not yes:
        typer.confirm(f"Delete {blob}?", abort=True)
    stored = open_blob(blob, "blob delete")
    with reported_errors(), stored:
        deleted = stored.delete()
    if deleted:
        success(f"Deleted {blob}")
    else:
        warning(f"{blob} does not exist")
