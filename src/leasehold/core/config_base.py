"""Base configuration model with YAML loading capabilities."""

from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError

T = TypeVar("T", bound="ConfigModel")


class ConfigModel(BaseModel):
    """Base model with YAML loading/saving capabilities."""

    @classmethod
    def from_yaml(cls: type[T], path: Path) -> T:
        """
        Load and validate configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Validated configuration model instance

        Raises:
            ConfigurationError: On file not found, invalid YAML, or validation errors
        """
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(cls._describe_yaml_error(e, path)) from e
        except OSError as e:
            raise ConfigurationError(f"Error reading configuration file {path}: {e}") from e

        try:
            return cls(**(data or {}))
        except ValidationError as e:
            raise ConfigurationError(cls._describe_validation_error(e, path)) from e

    @classmethod
    def load_or_default(cls: type[T], path: Path | None, **defaults) -> T:
        """
        Load from YAML or create with default values.

        Args:
            path: Optional path to YAML configuration file
            **defaults: Default values if file not provided

        Returns:
            Configuration model instance
        """
        if path and path.exists():
            return cls.from_yaml(path)
        return cls(**defaults)

    def to_yaml(self, path: Path):
        """
        Write configuration to YAML file.

        Args:
            path: Path to write YAML file
        """
        with open(path, "w") as f:
            f.write(self.to_yaml_string())

    def to_yaml_string(self) -> str:
        """Convert configuration to YAML string."""
        return yaml.safe_dump(
            self.model_dump(by_alias=True, exclude_unset=False),
            default_flow_style=False,
            sort_keys=False,
        )

    @classmethod
    def _describe_validation_error(cls, error: ValidationError, path: Path) -> str:
        lines = [f"Invalid {cls.__name__} configuration: {path.name}"]
        for err in error.errors():
            field_path = ".".join(str(loc) for loc in err["loc"])
            if "missing" in err["type"]:
                lines.append(f"  Missing required field: {field_path}")
            else:
                lines.append(f"  {field_path}: {err['msg']}")
        return "\n".join(lines)

    @classmethod
    def _describe_yaml_error(cls, error: yaml.YAMLError, path: Path) -> str:
        message = f"Invalid YAML syntax in: {path.name}"
        # Try to extract line number from error
        mark = getattr(error, "problem_mark", None)
        if mark is not None:
            message += f" (line {mark.line + 1}, column {mark.column + 1})"
        return message
