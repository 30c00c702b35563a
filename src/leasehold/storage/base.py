"""Blob store protocol: the remote operations the concurrency layer consumes.

The store is the only shared mutable resource. It offers single-object
conditional writes (records), per-object metadata, and time-bounded
exclusive leases. It has no transactions; everything above it is built from
these primitives.

Records are JSON documents with a version token. Conflicts are reported by
raising ConflictError rather than returning False, so the status code can be
handed straight to a RequestContext.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from ..errors import ConfigurationError


@dataclass(frozen=True)
class VersionToken:
    """Opaque version identifier for conditioned writes.

    The actual value depends on the storage backend:
    - Azure: ETag string
    - In-memory: version counter
    """

    value: Any

    def __str__(self) -> str:
        return str(self.value)


@dataclass
class StoredRecord:
    """A record as read from the store."""

    fields: dict[str, Any]
    version: VersionToken


class WriteMode(str, Enum):
    """How a conditioned record write combines with the stored record."""

    MERGE = "merge"
    """Union with the stored fields; written fields win."""

    REPLACE = "replace"
    """Overwrite the whole record."""


def combine_fields(stored: dict[str, Any] | None, fields: dict[str, Any], mode: WriteMode) -> dict[str, Any]:
    """Apply a write mode to the stored fields."""
    if mode is WriteMode.MERGE and stored:
        return {**stored, **fields}
    return dict(fields)


def encode_record(fields: dict[str, Any]) -> bytes:
    return json.dumps(fields, indent=2, sort_keys=True).encode("utf-8")


def decode_record(name: str, data: bytes) -> dict[str, Any]:
    """Decode a JSON record, rejecting anything that is not an object."""
    try:
        value = json.loads(data.decode("utf-8")) if data else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Invalid JSON record in {name}: {e}") from e
    if not isinstance(value, dict):
        raise ConfigurationError(f"Record {name} is not a JSON object")
    return value


@runtime_checkable
class BlobStore(Protocol):
    """Remote store operations consumed by leases, records and blobs."""

    def exists(self, name: str) -> bool:
        """Check if an object exists."""
        ...

    def create_if_absent(self, name: str, data: bytes) -> bool:
        """Create an object only if it doesn't exist.

        Returns:
            True if created, False if it already existed
        """
        ...

    def read_record(self, name: str) -> StoredRecord | None:
        """Read a JSON record and its version, or None if absent."""
        ...

    def write_record(
        self,
        name: str,
        fields: dict[str, Any],
        mode: WriteMode,
        version: VersionToken | None,
    ) -> VersionToken:
        """Conditionally write a record.

        Args:
            name: Object name
            fields: Record fields
            mode: MERGE or REPLACE
            version: Version read before computing ``fields``; None means the
                record was absent and must still be absent

        Returns:
            The new version

        Raises:
            ConflictError: 409 if inserting over an existing record, 412 if
                the stored version no longer matches
        """
        ...

    def fetch_metadata(self, name: str) -> dict[str, str]:
        """Fetch an object's metadata map.

        Raises:
            KeyError: If the object doesn't exist
        """
        ...

    def write_metadata(self, name: str, metadata: dict[str, str], lease_id: str | None = None) -> None:
        """Replace an object's metadata map.

        Raises:
            KeyError: If the object doesn't exist
            ConflictError: 412 if the object is leased and ``lease_id`` doesn't match
        """
        ...

    def acquire_lease(self, name: str, duration: float | None) -> str:
        """Acquire an exclusive lease on an existing object.

        Args:
            name: Object name
            duration: Lease duration in seconds, None for infinite

        Returns:
            The lease id

        Raises:
            ConflictError: 409 if another lease is active
        """
        ...

    def renew_lease(self, name: str, lease_id: str) -> None:
        """Renew a held lease.

        Raises:
            ConflictError: If the lease is no longer held
        """
        ...

    def release_lease(self, name: str, lease_id: str) -> None:
        """Release a held lease.

        Raises:
            ConflictError: If the lease is no longer held
        """
        ...

    def delete(self, name: str, lease_id: str | None = None) -> bool:
        """Delete an object.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            ConflictError: 412 if the object is leased and ``lease_id`` doesn't match
        """
        ...
