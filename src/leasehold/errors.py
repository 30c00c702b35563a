"""Error types for leasehold."""


class LeaseholdError(Exception):
    """Base exception for leasehold errors."""
    pass


class TransportError(LeaseholdError):
    """Network or service failure talking to the remote store.

    Whether it is worth retrying is up to the retry policy. ``status_code``
    is None when no HTTP response was received at all.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConflictError(LeaseholdError):
    """Precondition or version mismatch on a conditioned write.

    412 means the object changed since it was read; 409 means the object
    (or a lease on it) already exists.
    """

    def __init__(self, message: str, status_code: int = 412):
        super().__init__(message)
        self.status_code = status_code


class LeaseTimeoutError(LeaseholdError, TimeoutError):
    """Lease was not granted within the caller's timeout."""
    pass


class OperationCancelledError(LeaseholdError):
    """A blocking operation was cancelled through its cancel signal."""
    pass


class StillReferencedError(LeaseholdError):
    """Object cannot be deleted while external references are attached."""

    def __init__(self, name: str, count: int):
        super().__init__(
            f"{name} still has {count} external reference(s) attached; "
            "detach them before deleting"
        )
        self.name = name
        self.count = count


class ConfigurationError(LeaseholdError, ValueError):
    """Invalid configuration, duration, key or identifier."""
    pass
