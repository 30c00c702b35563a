"""leasehold - concurrency control for objects in remote blob storage."""

from ._version import __version__
from .concurrency import (
    ExclusiveLease,
    LeaseManager,
    acquire_lease,
    acquire_lease_async,
    new_optimistic_context,
    optimistic_update,
    optimistic_update_async,
)
from .core.config import RequestOptions, RetryPolicySettings
from .errors import (
    ConfigurationError,
    ConflictError,
    LeaseholdError,
    LeaseTimeoutError,
    OperationCancelledError,
    StillReferencedError,
    TransportError,
)
from .objects import RecordKey, RecordTable, StoredBlob
from .retry import (
    ExponentialRetryPolicy,
    LinearRetryPolicy,
    NoRetryPolicy,
    RequestContext,
    RetryDecision,
    RetryPolicy,
)
from .storage import BlobStore, InMemoryBlobStore, WriteMode, get_store

__all__ = [
    "BlobStore",
    "ConfigurationError",
    "ConflictError",
    "ExclusiveLease",
    "ExponentialRetryPolicy",
    "InMemoryBlobStore",
    "LeaseManager",
    "LeaseTimeoutError",
    "LeaseholdError",
    "LinearRetryPolicy",
    "NoRetryPolicy",
    "OperationCancelledError",
    "RecordKey",
    "RecordTable",
    "RequestContext",
    "RequestOptions",
    "RetryDecision",
    "RetryPolicy",
    "RetryPolicySettings",
    "StillReferencedError",
    "StoredBlob",
    "TransportError",
    "WriteMode",
    "__version__",
    "acquire_lease",
    "acquire_lease_async",
    "get_store",
    "new_optimistic_context",
    "optimistic_update",
    "optimistic_update_async",
]
