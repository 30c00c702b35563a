"""Azure Blob Storage implementation of BlobStore.

Uses ETags for conditioned record writes, blob leases for exclusive access
and blob metadata for attached references. Azure SDK errors are translated
into the leasehold taxonomy here and nowhere else.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from azure.core import MatchConditions
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.storage.blob import BlobLeaseClient, BlobServiceClient

from ..errors import ConflictError, TransportError
from .base import StoredRecord, VersionToken, WriteMode, combine_fields, decode_record, encode_record

logger = logging.getLogger(__name__)

# Azure encodes an infinite lease as a duration of -1
INFINITE_LEASE = -1


@contextmanager
def _translated(name: str, action: str) -> Iterator[None]:
    """Map Azure SDK failures onto ConflictError / TransportError."""
    try:
        yield
    except ResourceNotFoundError:
        # Callers decide what a missing blob means
        raise
    except HttpResponseError as e:
        status = e.status_code
        if status in (409, 412):
            raise ConflictError(f"{action} {name}: {e.reason or e.message}", status_code=status) from e
        logger.error(f"Failed to {action} {name}: {e}")
        raise TransportError(f"{action} {name} failed: {e.message}", status_code=status) from e
    except ServiceRequestError as e:
        logger.error(f"Failed to {action} {name}: {e}")
        raise TransportError(f"{action} {name} failed: {e}") from e


class AzureBlobStore:
    """Azure blob storage with ETag preconditions and blob leases."""

    def __init__(
        self,
        connection_string: str,
        container: str = "leasehold",
        server_timeout: float | None = None,
    ):
        """Initialize Azure blob store.

        Args:
            connection_string: Azure Storage connection string
            container: Blob container name (created if doesn't exist)
            server_timeout: Optional per-call server timeout in seconds
        """
        self.client = BlobServiceClient.from_connection_string(connection_string)
        self.container = container
        self._call_kwargs: dict[str, Any] = {}
        if server_timeout:
            self._call_kwargs["timeout"] = max(1, int(server_timeout))
        self._ensure_container()

    def _ensure_container(self) -> None:
        """Ensure the container exists."""
        try:
            container_client = self.client.get_container_client(self.container)
            if not container_client.exists():
                logger.info(f"Creating container: {self.container}")
                container_client.create_container()
        except ResourceExistsError:
            # Container already exists (race condition)
            pass

    def _blob(self, name: str):
        return self.client.get_blob_client(self.container, name)

    def exists(self, name: str) -> bool:
        with _translated(name, "check"):
            return self._blob(name).exists(**self._call_kwargs)

    def create_if_absent(self, name: str, data: bytes) -> bool:
        """Create blob only if it doesn't exist.

        This is atomic - either creates or fails if exists.
        """
        try:
            with _translated(name, "create"):
                self._blob(name).upload_blob(data, overwrite=False, **self._call_kwargs)
        except ConflictError:
            logger.debug(f"Blob {name} already exists")
            return False
        logger.debug(f"Created {name}")
        return True

    def read_record(self, name: str) -> StoredRecord | None:
        """Download the record and its ETag in a single request."""
        try:
            with _translated(name, "read"):
                downloader = self._blob(name).download_blob(**self._call_kwargs)
                content = downloader.readall()
                etag = downloader.properties.etag
        except ResourceNotFoundError:
            return None
        return StoredRecord(fields=decode_record(name, content), version=VersionToken(etag))

    def write_record(
        self,
        name: str,
        fields: dict[str, Any],
        mode: WriteMode,
        version: VersionToken | None,
    ) -> VersionToken:
        blob = self._blob(name)

        if version is None:
            try:
                with _translated(name, "insert"):
                    result = blob.upload_blob(
                        encode_record(dict(fields)),
                        overwrite=False,
                        content_type="application/json",
                        **self._call_kwargs,
                    )
            except ResourceNotFoundError as e:
                raise TransportError(f"Container {self.container} not found", status_code=404) from e
            logger.debug(f"Inserted {name} (etag: {result['etag']})")
            return VersionToken(result["etag"])

        conditions = {"etag": version.value, "match_condition": MatchConditions.IfNotModified}
        try:
            with _translated(name, "write"):
                stored = None
                if mode is WriteMode.MERGE:
                    content = blob.download_blob(**conditions, **self._call_kwargs).readall()
                    stored = decode_record(name, content)
                result = blob.upload_blob(
                    encode_record(combine_fields(stored, fields, mode)),
                    overwrite=True,
                    content_type="application/json",
                    **conditions,
                    **self._call_kwargs,
                )
        except ResourceNotFoundError as e:
            # Deleted between read and write
            raise ConflictError(f"Record {name} was deleted", status_code=412) from e

        logger.debug(f"Updated {name} with CAS (etag: {version.value} -> {result['etag']})")
        return VersionToken(result["etag"])

    def fetch_metadata(self, name: str) -> dict[str, str]:
        try:
            with _translated(name, "fetch metadata of"):
                props = self._blob(name).get_blob_properties(**self._call_kwargs)
        except ResourceNotFoundError as e:
            raise KeyError(name) from e
        return dict(props.metadata or {})

    def write_metadata(self, name: str, metadata: dict[str, str], lease_id: str | None = None) -> None:
        try:
            with _translated(name, "write metadata of"):
                self._blob(name).set_blob_metadata(metadata, lease=lease_id, **self._call_kwargs)
        except ResourceNotFoundError as e:
            raise KeyError(name) from e

    def acquire_lease(self, name: str, duration: float | None) -> str:
        lease_duration = INFINITE_LEASE if duration is None else int(duration)
        try:
            with _translated(name, "lease"):
                lease = self._blob(name).acquire_lease(lease_duration=lease_duration, **self._call_kwargs)
        except ResourceNotFoundError as e:
            raise KeyError(name) from e
        return lease.id

    def renew_lease(self, name: str, lease_id: str) -> None:
        try:
            with _translated(name, "renew lease on"):
                BlobLeaseClient(self._blob(name), lease_id=lease_id).renew(**self._call_kwargs)
        except ResourceNotFoundError as e:
            raise KeyError(name) from e

    def release_lease(self, name: str, lease_id: str) -> None:
        try:
            with _translated(name, "release lease on"):
                BlobLeaseClient(self._blob(name), lease_id=lease_id).release(**self._call_kwargs)
        except ResourceNotFoundError as e:
            raise KeyError(name) from e

    def delete(self, name: str, lease_id: str | None = None) -> bool:
        """Delete a blob."""
        try:
            with _translated(name, "delete"):
                self._blob(name).delete_blob(lease=lease_id, **self._call_kwargs)
        except ResourceNotFoundError:
            logger.debug(f"Blob {name} not found for deletion")
            return False
        logger.debug(f"Deleted {name}")
        return True
