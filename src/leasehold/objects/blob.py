"""Stored blobs with lease-protected external reference counting.

External references are recorded as blob metadata entries keyed
``XREFID_<32 upper-case hex digits>``, valued with a label describing the
referencing party. Every change to them happens under the blob's exclusive
lease, from a fresh metadata read, so concurrent attach/detach calls from
any number of processes never lose an update. A blob with attached
references refuses deletion.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from ..concurrency.lease import ExclusiveLease, LeaseManager, acquire_lease, acquire_lease_async
from ..core.config import RequestOptions
from ..errors import ConfigurationError, StillReferencedError, TransportError
from ..retry.context import RequestContext
from ..storage.base import BlobStore

logger = logging.getLogger(__name__)

REFERENCE_KEY_PREFIX = "XREFID_"

T = TypeVar("T")


def reference_key(reference_id: uuid.UUID) -> str:
    return REFERENCE_KEY_PREFIX + reference_id.hex.upper()


def is_reference_key(key: str) -> bool:
    return key.upper().startswith(REFERENCE_KEY_PREFIX)


def count_references(metadata: dict[str, str]) -> int:
    return sum(1 for key in metadata if is_reference_key(key))


class StoredBlob:
    """Handle to one blob in a store.

    Each handle owns its own LeaseManager, so two handles to the same blob
    exclude each other just like two processes would.
    """

    def __init__(self, store: BlobStore, name: str, options: RequestOptions | None = None):
        """Initialize handle.

        Args:
            store: Store holding the blob
            name: Blob name
            options: Retry options for metadata and delete round-trips
        """
        if not name:
            raise ConfigurationError("Blob name must not be empty")
        self.store = store
        self.name = name
        self.options = options
        self._manager: LeaseManager | None = None
        self._manager_lock = threading.Lock()
        self._metadata: dict[str, str] | None = None

    def __repr__(self) -> str:
        return f"StoredBlob({self.name!r})"

    @property
    def lease_manager(self) -> LeaseManager:
        if self._manager is None:
            with self._manager_lock:
                if self._manager is None:
                    self._manager = LeaseManager(self.store, self.name)
        return self._manager

    def lease(self, timeout: float | None = None, cancel_event: threading.Event | None = None) -> ExclusiveLease:
        """Acquire this blob's exclusive lease (see acquire_lease)."""
        return acquire_lease(self, timeout, cancel_event)

    async def lease_async(self, timeout: float | None = None) -> ExclusiveLease:
        return await acquire_lease_async(self, timeout)

    def exists(self) -> bool:
        return self.store.exists(self.name)

    def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one store round-trip, retrying transport failures per ``options``."""
        context = RequestContext.create(self.options)
        while True:
            try:
                return fn(*args, **kwargs)
            except TransportError as e:
                if not context.should_retry(e):
                    raise
                logger.debug(f"Retrying {fn.__name__} on {self.name} (retry {context.retry_count})")

    def _fetch_metadata(self) -> dict[str, str]:
        try:
            self._metadata = self._call(self.store.fetch_metadata, self.name)
        except KeyError:
            self._metadata = {}
        return self._metadata

    def reference_count(self, refresh: bool = True) -> int:
        """Number of attached external references.

        Args:
            refresh: Re-read metadata from the store; False reuses the last
                metadata this handle read or wrote
        """
        if refresh or self._metadata is None:
            self._fetch_metadata()
        return count_references(self._metadata)

    def references(self) -> dict[uuid.UUID, str]:
        """Attached reference ids mapped to their labels."""
        refs = {}
        for key, label in self._fetch_metadata().items():
            if not is_reference_key(key):
                continue
            try:
                refs[uuid.UUID(hex=key[len(REFERENCE_KEY_PREFIX):])] = label
            except ValueError:
                logger.warning(f"Ignoring malformed reference key {key!r} on {self.name}")
        return refs

    def _update_references(self, lease: ExclusiveLease, reference_id: uuid.UUID, label: str | None, attach: bool) -> int:
        # Caller holds the lease
        metadata = self._fetch_metadata()
        key = reference_key(reference_id)
        # Metadata keys are case-insensitive remotely
        present = [k for k in metadata if k.upper() == key]
        if attach and not present:
            metadata[key] = label or reference_id.hex
        elif not attach and present:
            for k in present:
                del metadata[k]
        else:
            return count_references(metadata)

        self._call(self.store.write_metadata, self.name, metadata, lease_id=lease.lease_id)
        self._metadata = metadata
        count = count_references(metadata)
        action = "Attached" if attach else "Detached"
        logger.debug(f"{action} reference {reference_id} on {self.name}, {count} attached")
        return count

    def attach_reference(self, reference_id: uuid.UUID, label: str | None = None) -> int:
        """Record an external reference; attaching twice is a no-op.

        Returns:
            Reference count after the change
        """
        with self.lease() as lease:
            return self._update_references(lease, reference_id, label, attach=True)

    def detach_reference(self, reference_id: uuid.UUID, label: str | None = None) -> int:
        """Remove an external reference; detaching an absent one is a no-op.

        Returns:
            Reference count after the change
        """
        with self.lease() as lease:
            return self._update_references(lease, reference_id, label, attach=False)

    async def attach_reference_async(self, reference_id: uuid.UUID, label: str | None = None) -> int:
        async with await self.lease_async() as lease:
            return await asyncio.to_thread(self._update_references, lease, reference_id, label, True)

    async def detach_reference_async(self, reference_id: uuid.UUID, label: str | None = None) -> int:
        async with await self.lease_async() as lease:
            return await asyncio.to_thread(self._update_references, lease, reference_id, label, False)

    @staticmethod
    def _entity_id(entity: T, id_provider: Callable[[T], uuid.UUID]) -> uuid.UUID:
        reference_id = id_provider(entity)
        if reference_id is None or reference_id.int == 0:
            raise ConfigurationError(f"{type(entity).__name__} has no identifier to reference")
        return reference_id

    def attach_entity(self, entity: T, id_provider: Callable[[T], uuid.UUID]) -> int:
        """Attach a reference for ``entity``, labelled with its class name."""
        return self.attach_reference(self._entity_id(entity, id_provider), type(entity).__name__)

    def detach_entity(self, entity: T, id_provider: Callable[[T], uuid.UUID]) -> int:
        return self.detach_reference(self._entity_id(entity, id_provider), type(entity).__name__)

    def _delete_leased(self, lease: ExclusiveLease) -> bool:
        if lease.created:
            # Deleted elsewhere after the existence check; the lease recreated it empty
            logger.debug(f"{self.name} vanished before it was leased, removing the placeholder")
            self._call(self.store.delete, self.name, lease_id=lease.lease_id)
            self.lease_manager.discard()
            self._metadata = None
            return False

        count = self.reference_count(refresh=True)
        if count >= 1:
            raise StillReferencedError(self.name, count)
        deleted = self._call(self.store.delete, self.name, lease_id=lease.lease_id)
        # The lease disappears with the blob
        self.lease_manager.discard()
        self._metadata = None
        if deleted:
            logger.info(f"Deleted {self.name}")
        return deleted

    def delete(self) -> bool:
        """Delete the blob unless references are still attached.

        Returns:
            False if the blob did not exist

        Raises:
            StillReferencedError: If one or more references are attached
        """
        if not self.exists():
            return False
        with self.lease() as lease:
            return self._delete_leased(lease)

    async def delete_async(self) -> bool:
        if not await asyncio.to_thread(self.exists):
            return False
        async with await self.lease_async() as lease:
            return await asyncio.to_thread(self._delete_leased, lease)

    def close(self) -> None:
        """Release any lease this handle still holds."""
        if self._manager is not None:
            self._manager.close()

    def __enter__(self) -> "StoredBlob":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def describe(self) -> dict[str, Any]:
        """Summary used by the CLI."""
        return {
            "name": self.name,
            "exists": self.exists(),
            "references": self.reference_count(),
        }
