"""Shared utilities for CLI commands."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import typer

from ..core.config import LeaseholdConfig
from ..errors import ConfigurationError, LeaseholdError
from ..objects import StoredBlob
from ..storage import BlobStore, store_from_settings
from .display import error, info


def get_config_or_exit(command_name: str | None = None) -> LeaseholdConfig:
    """Get config instance or exit with helpful message.

    Args:
        command_name: Optional command name for better error context

    Raises:
        typer.Exit: If the config file exists but cannot be loaded
    """
    try:
        return LeaseholdConfig.get_instance()
    except ConfigurationError as e:
        error(f"Error: {e}")
        if command_name:
            info(f"(Required for 'leasehold {command_name}')")
        raise typer.Exit(1)


def open_store(config: LeaseholdConfig) -> BlobStore:
    """Build the configured store, exiting on configuration problems."""
    try:
        return store_from_settings(config.storage, server_timeout=config.requests.server_timeout)
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(1)


def open_blob(name: str, command_name: str | None = None) -> StoredBlob:
    config = get_config_or_exit(command_name)
    return StoredBlob(open_store(config), name, options=config.requests)


def parse_reference_id(value: str) -> uuid.UUID:
    """Parse a reference id given in any form uuid.UUID accepts."""
    try:
        return uuid.UUID(value)
    except ValueError:
        error(f"Invalid reference id: {value}")
        raise typer.Exit(1)


@contextmanager
def reported_errors() -> Iterator[None]:
    """Report library errors and exit with status 1."""
    try:
        yield
    except LeaseholdError as e:
        error(str(e))
        raise typer.Exit(1)
