"""Concurrency control: exclusive leases and optimistic updates."""

from ..retry.context import new_optimistic_context
from .lease import (
    ExclusiveLease,
    LeaseManager,
    LeaseTarget,
    acquire_lease,
    acquire_lease_async,
    validate_lease_duration,
)
from .optimistic import optimistic_update, optimistic_update_async

__all__ = [
    "ExclusiveLease",
    "LeaseManager",
    "LeaseTarget",
    "acquire_lease",
    "acquire_lease_async",
    "new_optimistic_context",
    "optimistic_update",
    "optimistic_update_async",
    "validate_lease_duration",
]
