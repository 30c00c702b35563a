"""In-memory implementation of BlobStore.

This provides a thread-safe, in-memory store that mimics the conditional
write and lease semantics of Azure blob storage, including lease expiry.
It backs the unit tests and the ``memory`` backend.
"""

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..errors import ConflictError
from .base import StoredRecord, VersionToken, WriteMode, combine_fields, decode_record, encode_record


@dataclass
class _Lease:
    lease_id: str
    duration: float | None  # None = infinite
    expires_at: float | None


@dataclass
class _Entry:
    data: bytes
    version: int
    metadata: dict[str, str] = field(default_factory=dict)
    lease: _Lease | None = None


class InMemoryBlobStore:
    """In-memory blob storage for testing.

    Every mutation bumps a store-wide version counter, so versions are never
    reused even across delete and re-create.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize empty store.

        Args:
            clock: Monotonic clock used for lease expiry (injectable for tests)
        """
        self._entries: dict[str, _Entry] = {}
        self._version_counter = 0
        self._clock = clock
        self._lock = threading.Lock()
        self.calls: dict[str, int] = {}

    def _count(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1

    def _next_version(self) -> int:
        self._version_counter += 1
        return self._version_counter

    def _active_lease(self, entry: _Entry) -> _Lease | None:
        lease = entry.lease
        if lease is not None and lease.expires_at is not None and lease.expires_at <= self._clock():
            entry.lease = None
            return None
        return lease

    def _check_lease(self, name: str, entry: _Entry, lease_id: str | None) -> None:
        lease = self._active_lease(entry)
        if lease is None:
            if lease_id is not None:
                raise ConflictError(f"No active lease on {name}", status_code=412)
            return
        if lease.lease_id != lease_id:
            raise ConflictError(f"{name} is leased and the lease id does not match", status_code=412)

    def exists(self, name: str) -> bool:
        with self._lock:
            self._count("exists")
            return name in self._entries

    def create_if_absent(self, name: str, data: bytes) -> bool:
        with self._lock:
            self._count("create_if_absent")
            if name in self._entries:
                return False
            self._entries[name] = _Entry(data=data, version=self._next_version())
            return True

    def read_record(self, name: str) -> StoredRecord | None:
        with self._lock:
            self._count("read_record")
            entry = self._entries.get(name)
            if entry is None:
                return None
            data, version = entry.data, entry.version
        return StoredRecord(fields=decode_record(name, data), version=VersionToken(version))

    def write_record(
        self,
        name: str,
        fields: dict[str, Any],
        mode: WriteMode,
        version: VersionToken | None,
    ) -> VersionToken:
        with self._lock:
            self._count("write_record")
            entry = self._entries.get(name)
            if version is None:
                if entry is not None:
                    raise ConflictError(f"Record {name} already exists", status_code=409)
                new_version = self._next_version()
                self._entries[name] = _Entry(data=encode_record(dict(fields)), version=new_version)
                return VersionToken(new_version)

            if entry is None or entry.version != version.value:
                raise ConflictError(f"Record {name} changed since version {version}", status_code=412)
            self._check_lease(name, entry, None)

            stored = decode_record(name, entry.data) if mode is WriteMode.MERGE else None
            entry.data = encode_record(combine_fields(stored, fields, mode))
            entry.version = self._next_version()
            return VersionToken(entry.version)

    def fetch_metadata(self, name: str) -> dict[str, str]:
        with self._lock:
            self._count("fetch_metadata")
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            return dict(entry.metadata)

    def write_metadata(self, name: str, metadata: dict[str, str], lease_id: str | None = None) -> None:
        with self._lock:
            self._count("write_metadata")
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            self._check_lease(name, entry, lease_id)
            entry.metadata = dict(metadata)
            entry.version = self._next_version()

    def acquire_lease(self, name: str, duration: float | None) -> str:
        with self._lock:
            self._count("acquire_lease")
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            if self._active_lease(entry) is not None:
                raise ConflictError(f"{name} already has an active lease", status_code=409)
            expires_at = None if duration is None else self._clock() + duration
            entry.lease = _Lease(lease_id=str(uuid.uuid4()), duration=duration, expires_at=expires_at)
            return entry.lease.lease_id

    def renew_lease(self, name: str, lease_id: str) -> None:
        with self._lock:
            self._count("renew_lease")
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            lease = self._active_lease(entry)
            if lease is None or lease.lease_id != lease_id:
                raise ConflictError(f"Lease {lease_id} on {name} is not active", status_code=409)
            if lease.duration is not None:
                # Renewal restarts the original duration
                lease.expires_at = self._clock() + lease.duration

    def release_lease(self, name: str, lease_id: str) -> None:
        with self._lock:
            self._count("release_lease")
            entry = self._entries.get(name)
            if entry is None:
                raise KeyError(name)
            lease = self._active_lease(entry)
            if lease is None or lease.lease_id != lease_id:
                raise ConflictError(f"Lease {lease_id} on {name} is not active", status_code=409)
            entry.lease = None

    def delete(self, name: str, lease_id: str | None = None) -> bool:
        with self._lock:
            self._count("delete")
            entry = self._entries.get(name)
            if entry is None:
                return False
            self._check_lease(name, entry, lease_id)
            del self._entries[name]
            return True

    def list_names(self, prefix: str = "") -> list[str]:
        """List object names with prefix."""
        with self._lock:
            return sorted(name for name in self._entries if name.startswith(prefix))

    def clear(self) -> None:
        """Clear all data (useful for tests)."""
        with self._lock:
            self._entries.clear()
            self.calls.clear()
