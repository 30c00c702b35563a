"""Keyed records stored as JSON blobs.

A RecordTable maps (partition, row) keys onto blob names under
``tables/<table>/`` and exposes plain and optimistic insert-or-merge /
insert-or-replace writes on top of the store's conditioned writes.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..concurrency.optimistic import optimistic_update, optimistic_update_async
from ..core.config import RequestOptions
from ..errors import ConfigurationError
from ..retry.context import RequestContext
from ..storage.base import BlobStore, WriteMode

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 1024
_FORBIDDEN_KEY_CHARS = frozenset("/\\#?")


def _validate_key_part(kind: str, value: str) -> None:
    if not value:
        raise ConfigurationError(f"{kind} key must not be empty")
    if len(value) > MAX_KEY_LENGTH:
        raise ConfigurationError(f"{kind} key exceeds {MAX_KEY_LENGTH} characters")
    bad = _FORBIDDEN_KEY_CHARS.intersection(value)
    if bad:
        raise ConfigurationError(f"{kind} key {value!r} contains forbidden characters: {''.join(sorted(bad))}")


@dataclass(frozen=True)
class RecordKey:
    """Partition and row key identifying one record."""

    partition: str
    row: str

    def __post_init__(self):
        _validate_key_part("Partition", self.partition)
        _validate_key_part("Row", self.row)

    def __str__(self) -> str:
        return f"{self.partition}/{self.row}"


class RecordTable:
    """A named table of records in a blob store."""

    def __init__(self, store: BlobStore, table: str, options: RequestOptions | None = None):
        _validate_key_part("Table", table)
        self.store = store
        self.table = table
        self.options = options

    def blob_name(self, key: RecordKey) -> str:
        return f"tables/{self.table}/{key.partition}/{key.row}"

    def get_record(self, key: RecordKey) -> dict[str, Any] | None:
        """Fields of the record, or None if it does not exist."""
        record = self.store.read_record(self.blob_name(key))
        return None if record is None else dict(record.fields)

    def _write(self, key: RecordKey, fields: dict[str, Any], mode: WriteMode) -> None:
        # One read for the version, one conditioned write; a concurrent
        # writer in between surfaces as ConflictError
        name = self.blob_name(key)
        record = self.store.read_record(name)
        self.store.write_record(name, fields, mode, None if record is None else record.version)
        logger.debug(f"Wrote {name} ({mode.value})")

    def insert_or_merge(self, key: RecordKey, fields: dict[str, Any]) -> None:
        self._write(key, fields, WriteMode.MERGE)

    def insert_or_replace(self, key: RecordKey, fields: dict[str, Any]) -> None:
        self._write(key, fields, WriteMode.REPLACE)

    def optimistic_insert_or_merge(
        self,
        key: RecordKey,
        transform: Callable[[dict[str, Any] | None], dict[str, Any]],
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        """Merge ``transform(current)`` into the record, retrying on conflict."""
        return optimistic_update(
            self.store, self.blob_name(key), transform, WriteMode.MERGE, context, self.options
        )

    def optimistic_insert_or_replace(
        self,
        key: RecordKey,
        transform: Callable[[dict[str, Any] | None], dict[str, Any]],
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        """Replace the record with ``transform(current)``, retrying on conflict."""
        return optimistic_update(
            self.store, self.blob_name(key), transform, WriteMode.REPLACE, context, self.options
        )

    async def get_record_async(self, key: RecordKey) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.get_record, key)

    async def optimistic_insert_or_merge_async(
        self,
        key: RecordKey,
        transform: Callable[[dict[str, Any] | None], Awaitable[dict[str, Any]]],
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        return await optimistic_update_async(
            self.store, self.blob_name(key), transform, WriteMode.MERGE, context, self.options
        )

    async def optimistic_insert_or_replace_async(
        self,
        key: RecordKey,
        transform: Callable[[dict[str, Any] | None], Awaitable[dict[str, Any]]],
        context: RequestContext | None = None,
    ) -> dict[str, Any]:
        return await optimistic_update_async(
            self.store, self.blob_name(key), transform, WriteMode.REPLACE, context, self.options
        )
