"""Lease commands."""

import time

import typer

from .common_options import blob_argument, timeout_option
from .display import info, success
from .utils import open_blob, reported_errors

app = typer.Typer(help="Hold exclusive leases")


@app.command()
def hold(
    blob: str = blob_argument(),
    seconds: float = typer.Option(30.0, "--seconds", "-s", min=0, help="How long to hold the lease"),
    timeout: float | None = timeout_option(),
):
    """Acquire a blob's lease, hold it, then release it.

    Useful for checking that other writers wait for the lease. Ctrl+C
    releases early.
    """
    stored = open_blob(blob, "lease hold")
    with reported_errors(), stored:
        with stored.lease(timeout=timeout) as lease:
            success(f"Holding lease {lease.lease_id} on {blob} for {seconds:g}s")
            try:
                time.sleep(seconds)
            except KeyboardInterrupt:
                info("Interrupted, releasing")
    success(f"Released lease on {blob}")
