"""Optimistic read-transform-write loop over conditioned record writes.

Handles the common pattern of:
1. Read the current record (or its absence) and remember its version
2. Apply the caller's transform
3. Write back, conditioned on the version read
4. On a conflict, ask the request context whether to re-read and retry

The transform may run several times and must be a pure function of its
input. There is no attempt cap here: the context's retry policy decides when
to give up, and the conflict that made it give up is re-raised unchanged.
Errors other than conflicts propagate on first occurrence.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.config import RequestOptions
from ..errors import ConflictError
from ..retry.context import RequestContext, new_optimistic_context
from ..storage.base import BlobStore, StoredRecord, WriteMode

logger = logging.getLogger(__name__)

Fields = dict[str, Any]
Transform = Callable[[Fields | None], Fields]
AsyncTransform = Callable[[Fields | None], Awaitable[Fields]]


def _current(record: StoredRecord | None) -> Fields | None:
    # Hand the transform its own copy so retries start from fresh state
    return None if record is None else dict(record.fields)


def optimistic_update(
    store: BlobStore,
    name: str,
    transform: Transform,
    mode: WriteMode = WriteMode.MERGE,
    context: RequestContext | None = None,
    options: RequestOptions | None = None,
) -> Fields:
    """Update a record with compare-and-swap retry logic.

    Args:
        store: BlobStore implementation
        name: Record name
        transform: Function from current fields (None if absent) to new fields
        mode: MERGE with or REPLACE the stored fields
        context: Request context to consult on conflicts; a fresh optimistic
            context built from ``options`` when omitted
        options: Request options for the default context

    Returns:
        The fields produced by the transform that was written

    Raises:
        ConflictError: When the context declines another retry
    """
    if context is None:
        context = new_optimistic_context(options)

    while True:
        record = store.read_record(name)
        fields = transform(_current(record))
        try:
            store.write_record(name, fields, mode, None if record is None else record.version)
        except ConflictError as e:
            if not context.should_retry(e):
                logger.warning(f"Giving up on {name} after {context.retry_count} retries: {e}")
                raise
            logger.debug(f"Conflict on {name} ({e.status_code}), retry {context.retry_count}")
            continue
        logger.debug(f"Updated {name} ({mode.value}) after {context.retry_count} retries")
        return fields


async def optimistic_update_async(
    store: BlobStore,
    name: str,
    transform: AsyncTransform,
    mode: WriteMode = WriteMode.MERGE,
    context: RequestContext | None = None,
    options: RequestOptions | None = None,
) -> Fields:
    """Asynchronous form of optimistic_update.

    Store round-trips run in worker threads; ``transform`` is awaited.
    """
    if context is None:
        context = new_optimistic_context(options)

    while True:
        record = await asyncio.to_thread(store.read_record, name)
        fields = await transform(_current(record))
        try:
            await asyncio.to_thread(
                store.write_record, name, fields, mode, None if record is None else record.version
            )
        except ConflictError as e:
            if not await context.should_retry_async(e):
                logger.warning(f"Giving up on {name} after {context.retry_count} retries: {e}")
                raise
            logger.debug(f"Conflict on {name} ({e.status_code}), retry {context.retry_count}")
            continue
        logger.debug(f"Updated {name} ({mode.value}) after {context.retry_count} retries")
        return fields
