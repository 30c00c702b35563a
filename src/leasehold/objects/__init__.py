"""Storage objects built on the concurrency primitives."""

from .blob import REFERENCE_KEY_PREFIX, StoredBlob, reference_key
from .table import RecordKey, RecordTable

__all__ = ["REFERENCE_KEY_PREFIX", "RecordKey", "RecordTable", "StoredBlob", "reference_key"]
