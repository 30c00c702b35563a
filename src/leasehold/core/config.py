"""leasehold configuration management.

Request options (retry policy, timeouts) and storage settings live in
~/.leasehold/config.yaml. Library code never requires the file: every
entry point accepts explicit options and falls back to defaults.
"""

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator

from ..errors import ConfigurationError
from .config_base import ConfigModel


class RetryPolicySettings(BaseModel):
    """Which retry policy a request context builds, and its parameters."""

    kind: Literal["exponential", "linear", "none"] = "exponential"
    """Policy family."""

    backoff: float = Field(default=4.0, ge=0)
    """Base backoff in seconds (delta for exponential, fixed wait for linear)."""

    max_attempts: int = Field(default=3, ge=0)
    """Maximum number of retries the policy grants."""

    min_backoff: float = Field(default=3.0, ge=0)
    """Lower bound of an exponential backoff interval, in seconds."""

    max_backoff: float = Field(default=120.0, ge=0)
    """Upper bound of an exponential backoff interval, in seconds."""

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> "RetryPolicySettings":
        """Exponential settings with zero waits (handy for tests and tight loops)."""
        return cls(kind="exponential", backoff=0, min_backoff=0, max_backoff=0, max_attempts=max_attempts)


class RequestOptions(BaseModel):
    """Options applied to every request of a logical operation."""

    retry_policy: RetryPolicySettings = Field(default_factory=RetryPolicySettings)
    """Policy consulted by RequestContext.should_retry."""

    maximum_execution_time: float | None = None
    """Optional overall time budget for a single request, in seconds."""

    server_timeout: float | None = None
    """Optional per-call server timeout passed to the storage SDK, in seconds."""

    @classmethod
    def default(cls) -> "RequestOptions":
        return cls()


class StorageSettings(BaseModel):
    """Where blobs, records and leases live."""

    backend: Literal["auto", "azure", "memory"] = "auto"
    container: str = "leasehold"
    connection_string: str | None = None
    """Azure connection string; AZURE_STORAGE_CONNECTION_STRING when unset."""

    @field_validator("container")
    @classmethod
    def _check_container(cls, value: str) -> str:
        # Azure container naming: 3-63 chars, lowercase letters, digits, dashes
        if not 3 <= len(value) <= 63 or not all(c.islower() or c.isdigit() or c == "-" for c in value):
            raise ValueError("container must be 3-63 lowercase letters, digits or dashes")
        return value

    def resolve_connection_string(self) -> str | None:
        return self.connection_string or os.environ.get("AZURE_STORAGE_CONNECTION_STRING")


class LeaseholdConfig(ConfigModel):
    """Main configuration model, stored in ~/.leasehold/config.yaml."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    requests: RequestOptions = Field(default_factory=RequestOptions)

    _cached_instance: ClassVar["LeaseholdConfig | None"] = None

    @classmethod
    def get_instance(cls) -> "LeaseholdConfig":
        """Get cached instance, loading from file or falling back to defaults.

        The file is read once per session.
        """
        if cls._cached_instance is None:
            cls._cached_instance = cls.load_or_default(cls.get_config_path())
        return cls._cached_instance

    @classmethod
    def reset(cls):
        """Reset cached instance (useful for testing or forcing reload)."""
        cls._cached_instance = None

    @classmethod
    def load(cls) -> "LeaseholdConfig":
        """Load configuration from file.

        Raises:
            ConfigurationError: If configuration file doesn't exist or is invalid
        """
        config_path = cls.get_config_path()
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration not found at {config_path}\n"
                "Run 'leasehold config init' to create configuration"
            )
        return cls.from_yaml(config_path)

    @staticmethod
    def get_config_path() -> Path:
        from .paths import CONFIG_FILE

        return CONFIG_FILE

    def save(self) -> Path:
        """Save configuration, creating the parent directory if needed."""
        config_path = self.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        self.to_yaml(config_path)
        return config_path
