"""Storage backends for leasehold."""

import logging

from ..core.config import StorageSettings
from ..errors import ConfigurationError
from .base import BlobStore, StoredRecord, VersionToken, WriteMode
from .memory import InMemoryBlobStore

logger = logging.getLogger(__name__)


def get_store(backend: str = "auto", **kwargs) -> BlobStore:
    """Factory function to get a specific blob store.

    Args:
        backend: One of "auto", "azure", "memory"
        **kwargs: Backend-specific configuration (connection_string,
            container, server_timeout for Azure)

    Returns:
        BlobStore instance

    Raises:
        ConfigurationError: If backend is unknown or Azure settings are missing

    Examples:
        >>> store = get_store("memory")
        >>> store = get_store("azure", connection_string=conn, container="locks")
    """
    if backend not in ("auto", "azure", "memory"):
        raise ConfigurationError(f"Unknown backend type: {backend}")
    settings = StorageSettings(
        backend=backend,
        container=kwargs.get("container") or "leasehold",
        connection_string=kwargs.get("connection_string"),
    )
    return store_from_settings(settings, server_timeout=kwargs.get("server_timeout"))


def store_from_settings(settings: StorageSettings, server_timeout: float | None = None) -> BlobStore:
    """Build the store described by configuration.

    "auto" uses Azure when a connection string is available (explicitly or
    via AZURE_STORAGE_CONNECTION_STRING) and the in-memory store otherwise.
    """
    connection_string = settings.resolve_connection_string()

    if settings.backend == "memory" or (settings.backend == "auto" and not connection_string):
        logger.info("No Azure connection configured, using in-memory store")
        return InMemoryBlobStore()

    if not connection_string:
        raise ConfigurationError(
            "Azure storage connection not found. Either:\n"
            "1. Set storage.connection_string in the leasehold config\n"
            "2. Set AZURE_STORAGE_CONNECTION_STRING environment variable"
        )

    from .azure import AzureBlobStore

    logger.info(f"Using Azure blob store, container: {settings.container}")
    return AzureBlobStore(connection_string, container=settings.container, server_timeout=server_timeout)


__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "StoredRecord",
    "VersionToken",
    "WriteMode",
    "get_store",
    "store_from_settings",
]
