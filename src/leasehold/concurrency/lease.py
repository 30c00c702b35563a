"""Exclusive leases: pessimistic mutual exclusion across processes.

The remote store is the lock manager of record. A LeaseManager holds at most
one remote lease per target handle. The thread or asyncio task that took it
may nest further acquisitions (a reference count); other callers through the
same handle wait as if the lease were held elsewhere. The lease is renewed in
the background until the last holder releases. Different handles to the same
object, in the same process or elsewhere, exclude each other through the store.

An ExclusiveLease is the scoped capability handed to a caller. Releasing it
is idempotent; release failures are logged and suppressed because the lease
expires server-side anyway.
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from collections.abc import Hashable
from typing import Any, Protocol

from ..errors import (
    ConfigurationError,
    ConflictError,
    LeaseholdError,
    LeaseTimeoutError,
    OperationCancelledError,
)
from ..storage.base import BlobStore

logger = logging.getLogger(__name__)

LEASE_ACQUIRE_DURATION = 60.0
LEASE_RENEWAL_INTERVAL = 30.0
LOCK_WAIT_INTERVAL = 0.2

MIN_LEASE_DURATION = 15.0
MAX_LEASE_DURATION = 60.0

# Store responses meaning "someone else holds it, try again later"
_BUSY_STATUS_CODES = (409, 412)

# Runs remote acquisition attempts for coroutines; a grant that lands after the
# awaiting task was cancelled is released from the worker thread.
_attempt_executor = ThreadPoolExecutor(thread_name_prefix="lease-acquire")


def validate_lease_duration(duration: float | None) -> None:
    """Leases last 15-60 seconds, or forever (None)."""
    if duration is None:
        return
    if not MIN_LEASE_DURATION <= duration <= MAX_LEASE_DURATION:
        raise ConfigurationError(
            f"Lease duration must be between {MIN_LEASE_DURATION:g} and "
            f"{MAX_LEASE_DURATION:g} seconds (or infinite), got {duration}"
        )


def _deadline(timeout: float | None) -> float | None:
    if timeout is None:
        return None
    if timeout < 0:
        raise ConfigurationError(f"timeout must be >= 0 or None, got {timeout}")
    return time.monotonic() + timeout


def _current_owner() -> Hashable:
    """The running asyncio task, or the current thread outside a coroutine."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return task if task is not None else threading.get_ident()


class LeaseTarget(Protocol):
    """Anything a lease can protect: a named object with its own manager."""

    name: str

    @property
    def lease_manager(self) -> "LeaseManager": ...


class LeaseManager:
    """Owns the remote lease for one target handle."""

    def __init__(
        self,
        store: BlobStore,
        name: str,
        duration: float | None = LEASE_ACQUIRE_DURATION,
        renewal_interval: float = LEASE_RENEWAL_INTERVAL,
        poll_interval: float = LOCK_WAIT_INTERVAL,
    ):
        """Initialize manager.

        Args:
            store: Store that grants the lease
            name: Object to lease
            duration: Remote lease duration in seconds, None for infinite
            renewal_interval: How often the background renewer extends the lease
            poll_interval: Wait between attempts while the object is leased elsewhere
        """
        validate_lease_duration(duration)
        self.store = store
        self.name = name
        self.duration = duration
        self.renewal_interval = renewal_interval
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._lease_id: str | None = None
        self._refcount = 0
        self._owner: Hashable | None = None
        self._stop_renewal: threading.Event | None = None
        self._renewer: threading.Thread | None = None

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._refcount >= 1

    @property
    def holders(self) -> int:
        with self._lock:
            return self._refcount

    def active_lease_id(self) -> str | None:
        """Lease id currently held through this manager, if any."""
        with self._lock:
            return self._lease_id

    def _try_acquire(self, owner: Hashable, target: Any = None) -> "ExclusiveLease | None":
        """One acquisition attempt on behalf of ``owner``.

        The owner that holds the lease may nest further acquisitions; any
        other caller is refused until the last holder releases, just as if
        the lease were held by another process.

        Returns:
            The granted lease, or None if the lease is held elsewhere
        """
        with self._lock:
            if self._refcount > 0:
                if self._owner != owner:
                    return None
                self._refcount += 1
                return ExclusiveLease(self, target)

            # Leases need an existing blob
            created = self.store.create_if_absent(self.name, b"")
            try:
                lease_id = self.store.acquire_lease(self.name, self.duration)
            except ConflictError as e:
                if e.status_code in _BUSY_STATUS_CODES:
                    return None
                raise
            except KeyError:
                logger.debug(f"{self.name} was deleted before it could be leased")
                return None

            self._lease_id = lease_id
            self._owner = owner
            self._refcount = 1
            self._start_renewal(lease_id)
            logger.info(f"Acquired lease on {self.name}")
            return ExclusiveLease(self, target, created=created)

    def acquire(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        target: Any = None,
    ) -> "ExclusiveLease":
        """Block until the lease is granted.

        Args:
            timeout: Seconds to keep trying, None to wait forever
            cancel_event: Optional event that aborts the wait when set
            target: Object reported as the lease's target (defaults to the name)

        Returns:
            ExclusiveLease to release when done

        Raises:
            LeaseTimeoutError: If the timeout elapsed first
            OperationCancelledError: If cancel_event was set first
        """
        owner = _current_owner()
        deadline = _deadline(timeout)
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(f"Lease acquisition on {self.name} cancelled")
            lease = self._try_acquire(owner, target)
            if lease is not None:
                return lease

            wait = self._next_wait(deadline, timeout)
            logger.debug(f"{self.name} is leased elsewhere, retrying in {wait:.3f}s")
            if cancel_event is not None:
                if cancel_event.wait(wait):
                    raise OperationCancelledError(f"Lease acquisition on {self.name} cancelled")
            else:
                time.sleep(wait)

    async def acquire_async(self, timeout: float | None = None, target: Any = None) -> "ExclusiveLease":
        """Suspend until the lease is granted.

        The awaiting task owns the lease. Cancel it to abort; a grant that
        completes after cancellation is released in the background rather
        than leaked.

        Raises:
            LeaseTimeoutError: If the timeout elapsed first
        """
        owner = _current_owner()
        deadline = _deadline(timeout)
        while True:
            lease = await self._try_acquire_async(owner, target)
            if lease is not None:
                return lease
            wait = self._next_wait(deadline, timeout)
            logger.debug(f"{self.name} is leased elsewhere, retrying in {wait:.3f}s")
            await asyncio.sleep(wait)

    async def _try_acquire_async(self, owner: Hashable, target: Any) -> "ExclusiveLease | None":
        attempt = _attempt_executor.submit(self._try_acquire, owner, target)
        try:
            return await asyncio.wrap_future(attempt)
        except asyncio.CancelledError:
            attempt.add_done_callback(self._release_abandoned)
            raise

    def _release_abandoned(self, attempt: "Future[ExclusiveLease | None]") -> "Future[None] | None":
        # May run on the event loop thread if the attempt already finished
        if attempt.cancelled() or attempt.exception() is not None:
            return None
        lease = attempt.result()
        if lease is None:
            return None
        logger.info(f"Releasing lease on {self.name} granted after cancellation")
        return _attempt_executor.submit(lease.release)

    def _next_wait(self, deadline: float | None, timeout: float | None) -> float:
        if deadline is None:
            return self.poll_interval
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise LeaseTimeoutError(f"Timed out after {timeout}s waiting for lease on {self.name}")
        return min(self.poll_interval, remaining)

    def release(self) -> None:
        """Drop one holder; the remote lease is released with the last one."""
        with self._lock:
            if self._refcount == 0:
                logger.warning(f"Release called for a lease that no longer exists ({self.name})")
                return
            self._refcount -= 1
            if self._refcount == 0:
                self._owner = None
                self._terminate()

    def close(self) -> None:
        """Release the remote lease regardless of outstanding holders."""
        with self._lock:
            self._refcount = 0
            self._owner = None
            self._terminate()

    def discard(self) -> None:
        """Forget the remote lease without releasing it (the object is gone)."""
        with self._lock:
            self._lease_id = None
            self._halt_renewal()

    def _terminate(self) -> None:
        # Caller holds self._lock
        lease_id, self._lease_id = self._lease_id, None
        self._halt_renewal()
        if lease_id is None:
            return
        try:
            self.store.release_lease(self.name, lease_id)
        except (LeaseholdError, KeyError) as e:
            logger.warning(f"Failed to release lease on {self.name}, it will expire server-side: {e}")
        else:
            logger.info(f"Released lease on {self.name}")

    def _start_renewal(self, lease_id: str) -> None:
        if self.duration is None:
            return
        self._stop_renewal = threading.Event()
        self._renewer = threading.Thread(
            target=self._renew_loop,
            args=(lease_id, self._stop_renewal),
            name=f"lease-renewal:{self.name}",
            daemon=True,
        )
        self._renewer.start()

    def _halt_renewal(self) -> None:
        if self._stop_renewal is not None:
            self._stop_renewal.set()
        if self._renewer is not None and self._renewer is not threading.current_thread():
            self._renewer.join()
        self._stop_renewal = None
        self._renewer = None

    def _renew_loop(self, lease_id: str, stop: threading.Event) -> None:
        while not stop.wait(self.renewal_interval):
            try:
                self.store.renew_lease(self.name, lease_id)
                logger.debug(f"Renewed lease on {self.name}")
            except (LeaseholdError, KeyError) as e:
                logger.warning(f"Failed to renew lease on {self.name}: {e}")


class ExclusiveLease:
    """Scoped ownership of a remote lease.

    Use as a context manager (sync or async); release() may also be called
    directly, any number of times.
    """

    def __init__(self, manager: LeaseManager, target: Any = None, created: bool = False):
        self._manager = manager
        # True when this grant had to create the leased object
        self.created = created
        self.target = target if target is not None else manager.name
        self._released = False
        self._flag_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._manager.name

    @property
    def lease_id(self) -> str | None:
        return None if self._released else self._manager.active_lease_id()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Give up this holder's share of the lease. Idempotent."""
        with self._flag_lock:
            if self._released:
                return
            self._released = True
        self._manager.release()

    async def release_async(self) -> None:
        if not self._released:
            await asyncio.to_thread(self.release)

    def __enter__(self) -> "ExclusiveLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    async def __aenter__(self) -> "ExclusiveLease":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release_async()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"ExclusiveLease({self.name!r}, {state})"


def acquire_lease(
    target: LeaseTarget,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> ExclusiveLease:
    """Acquire an exclusive lease on ``target``, blocking until granted.

    Args:
        target: Object to lease (e.g. a StoredBlob)
        timeout: Seconds to keep trying, None to wait forever
        cancel_event: Optional event that aborts the wait when set

    Raises:
        LeaseTimeoutError: If the timeout elapsed first
        OperationCancelledError: If cancel_event was set first
    """
    return target.lease_manager.acquire(timeout, cancel_event, target=target)


async def acquire_lease_async(target: LeaseTarget, timeout: float | None = None) -> ExclusiveLease:
    """Asynchronous form of acquire_lease."""
    return await target.lease_manager.acquire_async(timeout, target=target)
