"""Retry decisions: pluggable policies and per-operation request contexts."""

from .context import RequestContext, extract_status_code, new_optimistic_context
from .policies import (
    ExponentialRetryPolicy,
    LinearRetryPolicy,
    NoRetryPolicy,
    OperationContext,
    RetryDecision,
    RetryPolicy,
    create_policy,
    is_retryable_status,
)

__all__ = [
    "ExponentialRetryPolicy",
    "LinearRetryPolicy",
    "NoRetryPolicy",
    "OperationContext",
    "RequestContext",
    "RetryDecision",
    "RetryPolicy",
    "create_policy",
    "extract_status_code",
    "is_retryable_status",
    "new_optimistic_context",
]
