"""Core configuration for leasehold."""

from .config import (
    LeaseholdConfig,
    RequestOptions,
    RetryPolicySettings,
    StorageSettings,
)

__all__ = ["LeaseholdConfig", "RequestOptions", "RetryPolicySettings", "StorageSettings"]
