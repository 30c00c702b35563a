"""Tests for retry policies."""

import pytest

from leasehold.core.config import RetryPolicySettings
from leasehold.errors import ConfigurationError
from leasehold.retry import (
    ExponentialRetryPolicy,
    LinearRetryPolicy,
    NoRetryPolicy,
    RetryDecision,
    RetryPolicy,
    create_policy,
    is_retryable_status,
)


class TestStatusClassification:
    """Which status codes are transient."""

    @pytest.mark.parametrize("code", [408, 500, 502, 503, 504, 599])
    def test_transient(self, code):
        assert is_retryable_status(code)

    @pytest.mark.parametrize("code", [301, 400, 404, 409, 412, 501, 505])
    def test_permanent(self, code):
        assert not is_retryable_status(code)


class TestNoRetryPolicy:
    def test_never_retries(self):
        policy = NoRetryPolicy()
        assert policy.decide(0, 503, None) == RetryDecision.stop()
        assert policy.decide(0, 408, None).should_retry is False


class TestLinearRetryPolicy:
    """Fixed backoff up to an attempt cap."""

    def test_defaults(self):
        policy = LinearRetryPolicy()
        assert policy.backoff == 30.0
        assert policy.max_attempts == 3

    def test_fixed_interval(self):
        policy = LinearRetryPolicy(backoff=2.5, max_attempts=3)
        for attempt in range(3):
            decision = policy.decide(attempt, 503, None)
            assert decision.should_retry
            assert decision.interval == 2.5

    def test_stops_at_max_attempts(self):
        policy = LinearRetryPolicy(backoff=1, max_attempts=2)
        assert not policy.decide(2, 503, None).should_retry
        assert not policy.decide(7, 503, None).should_retry

    def test_permanent_status_not_retried(self):
        assert not LinearRetryPolicy(backoff=1).decide(0, 404, None).should_retry

    def test_rejects_negative_values(self):
        with pytest.raises(ConfigurationError):
            LinearRetryPolicy(backoff=-1)
        with pytest.raises(ConfigurationError):
            LinearRetryPolicy(max_attempts=-1)


class TestExponentialRetryPolicy:
    """Randomized exponential backoff."""

    def test_defaults(self):
        policy = ExponentialRetryPolicy()
        assert (policy.backoff, policy.max_attempts, policy.min_backoff, policy.max_backoff) == (4.0, 3, 3.0, 120.0)

    def test_first_retry_waits_min_backoff(self):
        decision = ExponentialRetryPolicy(backoff=4, min_backoff=3).decide(0, 503, None)
        assert decision.should_retry
        assert decision.interval == pytest.approx(3.0)

    def test_interval_within_jitter_bounds(self):
        policy = ExponentialRetryPolicy(backoff=4, max_attempts=10, min_backoff=3, max_backoff=1000)
        for attempt in range(1, 6):
            low = 3 + (2**attempt - 1) * 0.8 * 4
            high = 3 + (2**attempt - 1) * 1.2 * 4
            for _ in range(20):
                interval = policy.decide(attempt, 500, None).interval
                assert low - 1e-9 <= interval <= high + 1e-9

    def test_interval_capped(self):
        policy = ExponentialRetryPolicy(backoff=4, max_attempts=20, min_backoff=3, max_backoff=10)
        assert policy.decide(10, 500, None).interval == 10

    def test_stops_at_max_attempts(self):
        policy = ExponentialRetryPolicy(max_attempts=3)
        assert policy.decide(2, 500, None).should_retry
        assert not policy.decide(3, 500, None).should_retry

    def test_rejects_inverted_bounds(self):
        with pytest.raises(ConfigurationError):
            ExponentialRetryPolicy(min_backoff=10, max_backoff=5)


class TestCreatePolicy:
    """Building policies from settings."""

    def test_none_settings(self):
        assert create_policy(None) is None

    def test_kinds(self):
        assert isinstance(create_policy(RetryPolicySettings(kind="none")), NoRetryPolicy)
        linear = create_policy(RetryPolicySettings(kind="linear", backoff=5, max_attempts=1))
        assert isinstance(linear, LinearRetryPolicy)
        assert linear.backoff == 5
        exponential = create_policy(RetryPolicySettings())
        assert isinstance(exponential, ExponentialRetryPolicy)

    def test_immediate_settings_never_wait(self):
        policy = create_policy(RetryPolicySettings.immediate(max_attempts=4))
        assert all(policy.decide(n, 503, None).interval == 0 for n in range(4))
        assert not policy.decide(4, 503, None).should_retry

    def test_policies_satisfy_protocol(self):
        for policy in (NoRetryPolicy(), LinearRetryPolicy(), ExponentialRetryPolicy()):
            assert isinstance(policy, RetryPolicy)
