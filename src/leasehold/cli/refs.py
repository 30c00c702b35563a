"""External reference commands."""

import typer

from .common_options import blob_argument
from .display import info, references_table, success
from .utils import open_blob, parse_reference_id, reported_errors

app = typer.Typer(help="Inspect and change external references on a blob")


@app.command(name="list")
def list_references(blob: str = blob_argument()):
    """List the references attached to a blob."""
    stored = open_blob(blob, "refs list")
    with reported_errors():
        references = stored.references()
    if not references:
        info(f"No references attached to {blob}")
        return
    references_table(blob, references)


@app.command()
def attach(
    blob: str = blob_argument(),
    reference_id: str = typer.Argument(..., help="Reference id (UUID)"),
    label: str | None = typer.Option(None, "--label", "-l", help="Label stored with the reference"),
):
    """Attach an external reference to a blob.

    Example:
        leasehold refs attach images/logo.png 6f1c2a1e-0000-4000-8000-000000000001 --label Account
    """
    stored = open_blob(blob, "refs attach")
    with reported_errors(), stored:
        count = stored.attach_reference(parse_reference_id(reference_id), label)
    success(f"Attached {reference_id} to {blob} ({count} attached)")


@app.command()
def detach(
    blob: str = blob_argument(),
    reference_id: str = typer.Argument(..., help="Reference id (UUID)"),
):
    """Detach an external reference from a blob."""
    stored = open_blob(blob, "refs detach")
    with reported_errors(), stored:
        count = stored.detach_reference(parse_reference_id(reference_id))
    success(f"Detached {reference_id} from {blob} ({count} attached)")


@app.command()
def count(blob: str = blob_argument()):
    """Print the number of references attached to a blob."""
    stored = open_blob(blob, "refs count")
    with reported_errors():
        info(str(stored.reference_count()))
