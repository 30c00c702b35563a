"""Test configuration and shared fixtures for leasehold tests."""

import logging
import uuid

import pytest

from leasehold.core.config import LeaseholdConfig, RequestOptions, RetryPolicySettings
from leasehold.retry import RequestContext
from leasehold.storage import InMemoryBlobStore


class ManualClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store():
    """Provide a clean in-memory store for each test."""
    return InMemoryBlobStore()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def clocked_store(clock):
    """In-memory store whose lease expiry follows ``clock``."""
    return InMemoryBlobStore(clock=clock)


@pytest.fixture
def immediate_options():
    """Request options that retry without waiting."""
    return RequestOptions(retry_policy=RetryPolicySettings.immediate(max_attempts=50))


@pytest.fixture
def reference_id():
    return uuid.UUID("6f1c2a1e-9b3d-4c5e-8f70-123456789abc")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration at a temp file and drop cached state."""
    monkeypatch.setattr("leasehold.core.paths.CONFIG_FILE", tmp_path / "config.yaml")
    monkeypatch.delenv("AZURE_STORAGE_CONNECTION_STRING", raising=False)
    LeaseholdConfig.reset()
    RequestContext.reset_factory()
    yield
    LeaseholdConfig.reset()
    RequestContext.reset_factory()


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="leasehold")
