"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from leasehold.core.config import LeaseholdConfig, RequestOptions, RetryPolicySettings, StorageSettings
from leasehold.errors import ConfigurationError
from leasehold.storage import InMemoryBlobStore, store_from_settings


class TestDefaults:
    def test_request_options(self):
        options = RequestOptions.default()
        assert options.retry_policy.kind == "exponential"
        assert options.retry_policy.backoff == 4.0
        assert options.retry_policy.max_attempts == 3
        assert options.retry_policy.min_backoff == 3.0
        assert options.retry_policy.max_backoff == 120.0
        assert options.maximum_execution_time is None

    def test_storage(self):
        settings = StorageSettings()
        assert settings.backend == "auto"
        assert settings.container == "leasehold"

    def test_missing_file_gives_defaults(self):
        config = LeaseholdConfig.get_instance()
        assert config == LeaseholdConfig()
        assert LeaseholdConfig.get_instance() is config


class TestValidation:
    @pytest.mark.parametrize("container", ["ab", "Upper", "under_score", "x" * 64])
    def test_bad_container(self, container):
        with pytest.raises(ValidationError):
            StorageSettings(container=container)

    def test_bad_policy_kind(self):
        with pytest.raises(ValidationError):
            RetryPolicySettings(kind="fibonacci")

    def test_negative_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicySettings(max_attempts=-1)


class TestYaml:
    """Loading and saving ~/.leasehold/config.yaml."""

    def test_save_and_load(self):
        config = LeaseholdConfig(
            storage=StorageSettings(backend="memory", container="locks"),
            requests=RequestOptions(retry_policy=RetryPolicySettings(kind="linear", backoff=2)),
        )
        path = config.save()
        assert path.exists()

        loaded = LeaseholdConfig.load()
        assert loaded == config

    def test_load_without_file(self):
        with pytest.raises(ConfigurationError, match="config init"):
            LeaseholdConfig.load()

    def test_invalid_yaml(self):
        LeaseholdConfig.get_config_path().write_text("storage: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            LeaseholdConfig.load()

    def test_invalid_values(self):
        LeaseholdConfig.get_config_path().write_text("storage:\n  backend: ftp\n")
        with pytest.raises(ConfigurationError) as exc_info:
            LeaseholdConfig.get_instance()
        assert "storage.backend" in str(exc_info.value)

    def test_empty_file(self):
        LeaseholdConfig.get_config_path().write_text("")
        assert LeaseholdConfig.load() == LeaseholdConfig()


class TestConnectionString:
    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "UseDevelopmentStorage=true")
        assert StorageSettings().resolve_connection_string() == "UseDevelopmentStorage=true"

    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "from-env")
        assert StorageSettings(connection_string="explicit").resolve_connection_string() == "explicit"

    def test_memory_backend_ignores_connection(self, monkeypatch):
        monkeypatch.setenv("AZURE_STORAGE_CONNECTION_STRING", "UseDevelopmentStorage=true")
        assert isinstance(store_from_settings(StorageSettings(backend="memory")), InMemoryBlobStore)
