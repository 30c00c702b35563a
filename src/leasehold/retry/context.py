"""Request context: per-operation retry decisions with status overrides.

A RequestContext is created at the start of a logical operation and consulted
every time one of its remote calls fails. It owns the retry counter and lets
the caller reclassify individual status codes as retryable (included) or
permanent (excluded) regardless of what the policy would say.

Contexts are not thread-safe: scope each one to a single operation.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from http import HTTPStatus

from azure.core.exceptions import HttpResponseError

from ..core.config import RequestOptions
from ..errors import LeaseholdError
from .policies import REQUEST_TIMEOUT, OperationContext, RetryDecision, RetryPolicy, create_policy

logger = logging.getLogger(__name__)

ContextFactory = Callable[[RequestOptions], "RequestContext"]


def extract_status_code(error: BaseException | None) -> int | None:
    """Pull an HTTP status code out of a storage failure.

    Returns None for errors that did not come from the store or carry no
    response status (e.g. connection failures).
    """
    if isinstance(error, (LeaseholdError, HttpResponseError)):
        return getattr(error, "status_code", None)
    return None


class RequestContext:
    """Retry bookkeeping for one logical operation."""

    _factory: ContextFactory | None = None
    _factory_lock = threading.Lock()

    def __init__(self, options: RequestOptions | None = None):
        self.options = options or RequestOptions.default()
        self.operation_context = OperationContext()
        self.retry_count = 0
        self._included: set[int] = set()
        self._excluded: set[int] = set()
        self._policy: RetryPolicy | None = None
        self._policy_resolved = False
        self._policy_lock = threading.Lock()

    @classmethod
    def create(cls, options: RequestOptions | None = None) -> "RequestContext":
        """Create a context for a new logical operation.

        Uses the registered factory when one is installed, so callers can
        substitute a context subclass without touching call sites.
        """
        factory = cls._factory
        if factory is not None:
            return factory(options or RequestOptions.default())
        return cls(options)

    @classmethod
    def register_factory(cls, factory: ContextFactory) -> None:
        with cls._factory_lock:
            RequestContext._factory = factory

    @classmethod
    def reset_factory(cls) -> None:
        with cls._factory_lock:
            RequestContext._factory = None

    @property
    def policy(self) -> RetryPolicy | None:
        """Retry policy, built from the options on first use."""
        if not self._policy_resolved:
            with self._policy_lock:
                if not self._policy_resolved:
                    self._policy = self.resolve_policy()
                    self._policy_resolved = True
        return self._policy

    def resolve_policy(self) -> RetryPolicy | None:
        """Build the policy for this context; override to inject a custom one."""
        return create_policy(self.options.retry_policy)

    @property
    def included_codes(self) -> frozenset[int]:
        return frozenset(self._included)

    @property
    def excluded_codes(self) -> frozenset[int]:
        return frozenset(self._excluded)

    def include_status(self, status_code: int | HTTPStatus) -> None:
        """Always treat ``status_code`` as retryable."""
        code = int(status_code)
        self._included.add(code)
        self._excluded.discard(code)

    def exclude_status(self, status_code: int | HTTPStatus) -> None:
        """Never retry ``status_code``."""
        code = int(status_code)
        self._excluded.add(code)
        self._included.discard(code)

    def reset_status(self, status_code: int | HTTPStatus) -> None:
        """Let the policy classify ``status_code`` again."""
        code = int(status_code)
        self._excluded.discard(code)
        self._included.discard(code)

    def decide(self, error: BaseException | None) -> RetryDecision:
        """Classify ``error`` without waiting or counting the retry."""
        status_code = extract_status_code(error)
        if status_code is None:
            return RetryDecision.stop()
        if status_code in self._excluded:
            return RetryDecision.stop()
        if status_code in self._included:
            # Substitute a code every retrying policy treats as transient
            status_code = REQUEST_TIMEOUT

        policy = self.policy
        if policy is None:
            return RetryDecision.stop()
        self.operation_context.record(self.retry_count, status_code)
        decision = policy.decide(self.retry_count, status_code, error, self.operation_context)

        budget = self.options.maximum_execution_time
        if decision.should_retry and budget is not None:
            elapsed = time.monotonic() - self.operation_context.started_at
            if elapsed + decision.interval > budget:
                logger.debug(f"Retry would exceed the {budget}s execution budget")
                return RetryDecision.stop()
        return decision

    def should_retry(self, error: BaseException | None) -> bool:
        """Decide whether the caller should retry, sleeping for the backoff first.

        Returns:
            True if the caller should attempt the operation again
        """
        decision = self.decide(error)
        if not decision.should_retry:
            logger.debug(f"Not retrying after {self.retry_count} retries: {error!r}")
            return False
        self.retry_count += 1
        logger.debug(
            f"Retry {self.retry_count} in {decision.interval:.3f}s "
            f"(request {self.operation_context.client_request_id}): {error!r}"
        )
        time.sleep(decision.interval)
        return True

    async def should_retry_async(self, error: BaseException | None) -> bool:
        """Asynchronous form of should_retry; suspends instead of sleeping.

        Same polarity as should_retry: True means "try again". Cancelling the
        awaiting task aborts the backoff with asyncio.CancelledError.
        """
        decision = self.decide(error)
        if not decision.should_retry:
            logger.debug(f"Not retrying after {self.retry_count} retries: {error!r}")
            return False
        self.retry_count += 1
        logger.debug(
            f"Retry {self.retry_count} in {decision.interval:.3f}s "
            f"(request {self.operation_context.client_request_id}): {error!r}"
        )
        await asyncio.sleep(decision.interval)
        return True


def new_optimistic_context(options: RequestOptions | None = None) -> RequestContext:
    """Context that retries conditioned-write conflicts.

    412 is a lost compare-and-swap; 409 is a lost insert race on a record that
    did not exist when it was read.
    """
    context = RequestContext.create(options)
    context.include_status(HTTPStatus.PRECONDITION_FAILED)
    context.include_status(HTTPStatus.CONFLICT)
    return context
