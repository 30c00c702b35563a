"""Tests for RequestContext retry decisions and status overrides."""

import asyncio
from unittest.mock import patch

import pytest
from azure.core.exceptions import HttpResponseError

from leasehold.core.config import RequestOptions, RetryPolicySettings
from leasehold.errors import ConflictError, TransportError
from leasehold.retry import (
    LinearRetryPolicy,
    NoRetryPolicy,
    RequestContext,
    RetryDecision,
    extract_status_code,
    new_optimistic_context,
)


def options(max_attempts=3, **kwargs):
    return RequestOptions(retry_policy=RetryPolicySettings.immediate(max_attempts=max_attempts), **kwargs)


class RecordingPolicy:
    """Policy that remembers the status codes it was asked about."""

    def __init__(self):
        self.seen = []

    def decide(self, attempt, status_code, error, context=None):
        self.seen.append(status_code)
        return RetryDecision(status_code == 408, 0.0)


class TestExtractStatusCode:
    def test_leasehold_errors(self):
        assert extract_status_code(ConflictError("x", status_code=409)) == 409
        assert extract_status_code(TransportError("x", status_code=503)) == 503
        assert extract_status_code(TransportError("x")) is None

    def test_azure_errors(self):
        error = HttpResponseError(message="busy")
        error.status_code = 503
        assert extract_status_code(error) == 503

    def test_other_errors(self):
        assert extract_status_code(ValueError("x")) is None
        assert extract_status_code(None) is None


class TestStatusOverrides:
    """Include/exclude sets and their precedence."""

    def test_include_and_exclude_are_exclusive(self):
        context = RequestContext(options())
        context.include_status(503)
        context.exclude_status(503)
        assert 503 in context.excluded_codes
        assert 503 not in context.included_codes

        context.include_status(503)
        assert 503 in context.included_codes
        assert 503 not in context.excluded_codes

    def test_reset_removes_from_both(self):
        context = RequestContext(options())
        context.include_status(412)
        context.exclude_status(500)
        context.reset_status(412)
        context.reset_status(500)
        assert context.included_codes == frozenset()
        assert context.excluded_codes == frozenset()

    def test_last_write_wins(self):
        """exclude then include retries; include then exclude does not."""
        error = ConflictError("conflict", status_code=412)

        context = RequestContext(options())
        context.exclude_status(412)
        context.include_status(412)
        assert context.should_retry(error)

        context = RequestContext(options())
        context.include_status(412)
        context.exclude_status(412)
        assert not context.should_retry(error)

    def test_included_code_is_remapped_to_request_timeout(self):
        policy = RecordingPolicy()
        context = RequestContext(options())
        context._policy, context._policy_resolved = policy, True
        context.include_status(412)

        assert context.should_retry(ConflictError("conflict", status_code=412))
        assert policy.seen == [408]

    def test_excluded_code_never_reaches_policy(self):
        policy = RecordingPolicy()
        context = RequestContext(options())
        context._policy, context._policy_resolved = policy, True
        context.exclude_status(503)

        assert not context.should_retry(TransportError("down", status_code=503))
        assert policy.seen == []

    def test_permanent_code_not_retried_without_override(self):
        context = RequestContext(options())
        assert not context.should_retry(ConflictError("conflict", status_code=412))


class TestShouldRetry:
    """Retry counting, waiting and exhaustion."""

    def test_counts_retries_until_exhausted(self):
        context = RequestContext(options(max_attempts=2))
        error = TransportError("busy", status_code=503)
        assert context.should_retry(error)
        assert context.should_retry(error)
        assert not context.should_retry(error)
        assert context.retry_count == 2

    def test_unclassifiable_error_not_retried(self):
        context = RequestContext(options())
        assert not context.should_retry(TransportError("connection reset"))
        assert not context.should_retry(RuntimeError("boom"))
        assert context.retry_count == 0

    def test_sleeps_for_the_backoff(self):
        settings = RetryPolicySettings(kind="linear", backoff=1.5, max_attempts=1)
        context = RequestContext(RequestOptions(retry_policy=settings))
        with patch("leasehold.retry.context.time.sleep") as sleep:
            assert context.should_retry(TransportError("busy", status_code=500))
        sleep.assert_called_once_with(1.5)

    def test_none_policy_kind(self):
        context = RequestContext(RequestOptions(retry_policy=RetryPolicySettings(kind="none")))
        assert isinstance(context.policy, NoRetryPolicy)
        assert not context.should_retry(TransportError("busy", status_code=503))

    def test_policy_resolved_once(self):
        context = RequestContext(options())
        with patch("leasehold.retry.context.create_policy", wraps=lambda s: LinearRetryPolicy(0, 5)) as build:
            first = context.policy
            second = context.policy
        assert first is second
        build.assert_called_once()

    def test_execution_budget_stops_retries(self):
        settings = RetryPolicySettings(kind="linear", backoff=10, max_attempts=5)
        context = RequestContext(RequestOptions(retry_policy=settings, maximum_execution_time=5))
        with patch("leasehold.retry.context.time.sleep") as sleep:
            assert not context.should_retry(TransportError("busy", status_code=503))
        sleep.assert_not_called()

    def test_attempts_recorded_on_operation_context(self):
        context = RequestContext(options())
        context.should_retry(TransportError("busy", status_code=503))
        context.should_retry(TransportError("busy", status_code=500))
        assert context.operation_context.attempts == [(0, 503), (1, 500)]


class TestShouldRetryAsync:
    """Asynchronous form has the same polarity."""

    @pytest.mark.asyncio
    async def test_true_means_retry(self):
        context = RequestContext(options(max_attempts=1))
        error = TransportError("busy", status_code=503)
        assert await context.should_retry_async(error) is True
        assert await context.should_retry_async(error) is False
        assert context.retry_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_backoff(self):
        settings = RetryPolicySettings(kind="linear", backoff=30, max_attempts=1)
        context = RequestContext(RequestOptions(retry_policy=settings))
        task = asyncio.create_task(context.should_retry_async(TransportError("busy", status_code=503)))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestFactory:
    """Context factory hook."""

    def test_registered_factory_used(self):
        class TracingContext(RequestContext):
            pass

        RequestContext.register_factory(TracingContext)
        assert isinstance(RequestContext.create(), TracingContext)
        assert isinstance(new_optimistic_context(), TracingContext)

        RequestContext.reset_factory()
        assert type(RequestContext.create()) is RequestContext

    def test_factory_receives_options(self):
        received = []

        def factory(opts):
            received.append(opts)
            return RequestContext(opts)

        RequestContext.register_factory(factory)
        opts = options(max_attempts=7)
        RequestContext.create(opts)
        assert received == [opts]


class TestOptimisticContext:
    def test_includes_conflict_codes(self):
        context = new_optimistic_context(options())
        assert {409, 412} <= context.included_codes

    def test_retries_conflicts_until_exhausted(self):
        context = new_optimistic_context(options(max_attempts=2))
        error = ConflictError("lost race", status_code=412)
        assert context.should_retry(error)
        assert context.should_retry(error)
        assert not context.should_retry(error)
