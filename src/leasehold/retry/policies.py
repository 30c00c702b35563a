"""Retry policies consulted by RequestContext.

A policy is a pure decision function: given how many retries have already
happened and the status code of the failure, it says whether another attempt
is worthwhile and how long to back off first. Policies are stateless and may
be shared between contexts and threads.
"""

import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from ..core.config import RetryPolicySettings
from ..errors import ConfigurationError

# Status code the request context substitutes for caller-included codes; every
# retrying policy treats it as transient.
REQUEST_TIMEOUT = 408


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of a policy decision."""

    should_retry: bool
    interval: float = 0.0  # seconds

    @classmethod
    def stop(cls) -> "RetryDecision":
        return cls(False, 0.0)


@dataclass
class OperationContext:
    """Per-operation bookkeeping handed to the policy on every decision.

    Policies may inspect it but must not rely on mutating it.
    """

    client_request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=time.monotonic)
    attempts: list[tuple[int, int]] = field(default_factory=list)  # (attempt, status_code)

    def record(self, attempt: int, status_code: int) -> None:
        self.attempts.append((attempt, status_code))


@runtime_checkable
class RetryPolicy(Protocol):
    """Pluggable retry decision function."""

    def decide(
        self,
        attempt: int,
        status_code: int,
        error: BaseException | None,
        context: OperationContext | None = None,
    ) -> RetryDecision:
        """Decide whether to retry.

        Args:
            attempt: Number of retries already performed (0 on first failure)
            status_code: HTTP status code of the failure
            error: The failure itself
            context: Operation bookkeeping

        Returns:
            RetryDecision with the backoff interval when retrying
        """
        ...


def is_retryable_status(status_code: int) -> bool:
    """Classify an HTTP status as transient.

    Client errors and redirects are permanent, except request timeouts;
    501 Not Implemented and 505 HTTP Version Not Supported never change.
    """
    if 300 <= status_code < 500 and status_code != REQUEST_TIMEOUT:
        return False
    return status_code not in (501, 505)


class NoRetryPolicy:
    """Never retries."""

    def decide(self, attempt, status_code, error, context=None) -> RetryDecision:
        return RetryDecision.stop()

    def __repr__(self) -> str:
        return "NoRetryPolicy()"


class LinearRetryPolicy:
    """Retries transient failures after a fixed backoff."""

    def __init__(self, backoff: float = 30.0, max_attempts: int = 3):
        if backoff < 0:
            raise ConfigurationError(f"backoff must be >= 0, got {backoff}")
        if max_attempts < 0:
            raise ConfigurationError(f"max_attempts must be >= 0, got {max_attempts}")
        self.backoff = backoff
        self.max_attempts = max_attempts

    def decide(self, attempt, status_code, error, context=None) -> RetryDecision:
        if attempt >= self.max_attempts or not is_retryable_status(status_code):
            return RetryDecision.stop()
        return RetryDecision(True, self.backoff)

    def __repr__(self) -> str:
        return f"LinearRetryPolicy(backoff={self.backoff}, max_attempts={self.max_attempts})"


class ExponentialRetryPolicy:
    """Retries transient failures with randomized exponential backoff.

    The n-th retry (0-based) waits
    ``min(min_backoff + (2**n - 1) * uniform(0.8, 1.2) * backoff, max_backoff)``
    seconds, so the first retry waits exactly ``min_backoff``.
    """

    def __init__(
        self,
        backoff: float = 4.0,
        max_attempts: int = 3,
        min_backoff: float = 3.0,
        max_backoff: float = 120.0,
    ):
        if min(backoff, min_backoff, max_backoff) < 0:
            raise ConfigurationError("backoff intervals must be >= 0")
        if max_attempts < 0:
            raise ConfigurationError(f"max_attempts must be >= 0, got {max_attempts}")
        if min_backoff > max_backoff:
            raise ConfigurationError("min_backoff cannot exceed max_backoff")
        self.backoff = backoff
        self.max_attempts = max_attempts
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff

    def decide(self, attempt, status_code, error, context=None) -> RetryDecision:
        if attempt >= self.max_attempts or not is_retryable_status(status_code):
            return RetryDecision.stop()
        jittered = random.uniform(0.8 * self.backoff, 1.2 * self.backoff)
        increment = (2**attempt - 1) * jittered
        return RetryDecision(True, min(self.min_backoff + increment, self.max_backoff))

    def __repr__(self) -> str:
        return (
            f"ExponentialRetryPolicy(backoff={self.backoff}, max_attempts={self.max_attempts}, "
            f"min_backoff={self.min_backoff}, max_backoff={self.max_backoff})"
        )


def create_policy(settings: RetryPolicySettings | None) -> RetryPolicy | None:
    """Build a policy from configuration.

    Args:
        settings: Policy settings, or None for no policy at all

    Returns:
        A policy instance, or None when settings is None

    Raises:
        ConfigurationError: If the policy kind is unknown
    """
    if settings is None:
        return None
    if settings.kind == "exponential":
        return ExponentialRetryPolicy(
            backoff=settings.backoff,
            max_attempts=settings.max_attempts,
            min_backoff=settings.min_backoff,
            max_backoff=settings.max_backoff,
        )
    if settings.kind == "linear":
        return LinearRetryPolicy(backoff=settings.backoff, max_attempts=settings.max_attempts)
    if settings.kind == "none":
        return NoRetryPolicy()
    raise ConfigurationError(f"Unknown retry policy kind: {settings.kind}")

