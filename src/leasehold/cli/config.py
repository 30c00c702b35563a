"""Configuration management CLI commands."""

import typer
from pydantic import ValidationError
from rich.syntax import Syntax

from ..core.config import LeaseholdConfig, RequestOptions, RetryPolicySettings, StorageSettings
from .display import console, error, info, section, success, warning
from .utils import get_config_or_exit

app = typer.Typer(help="Manage leasehold configuration")


@app.command()
def init(
    backend: str = typer.Option("auto", "--backend", help="Storage backend: auto, azure or memory"),
    container: str = typer.Option("leasehold", "--container", help="Blob container name"),
    retry: str = typer.Option("exponential", "--retry", help="Retry policy: exponential, linear or none"),
    max_attempts: int = typer.Option(3, "--max-attempts", min=0, help="Retries granted by the policy"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Initialize configuration file.

    Creates ~/.leasehold/config.yaml (or $LEASEHOLD_CONFIG). The connection
    string is read from AZURE_STORAGE_CONNECTION_STRING unless set in the file.
    """
    try:
        config = LeaseholdConfig(
            storage=StorageSettings(backend=backend, container=container),
            requests=RequestOptions(retry_policy=RetryPolicySettings(kind=retry, max_attempts=max_attempts)),
        )
    except ValidationError as e:
        for err in e.errors():
            error(f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")
        raise typer.Exit(1)

    config_path = LeaseholdConfig.get_config_path()
    if config_path.exists() and not force:
        overwrite = typer.confirm(f"{config_path} already exists. Overwrite?", default=False)
        if not overwrite:
            warning("Configuration not saved")
            raise typer.Exit(0)

    config.save()

    # Reset the cached instance since we created a new config
    LeaseholdConfig.reset()

    success(f"Configuration saved to {config_path}")


@app.command()
def show():
    """Display current configuration."""
    config = get_config_or_exit("config show")

    # Display as formatted YAML with syntax highlighting
    yaml_content = config.to_yaml_string()
    syntax = Syntax(yaml_content, "yaml", theme="monokai", line_numbers=False)

    config_path = LeaseholdConfig.get_config_path()
    if config_path.exists():
        section(f"Configuration from {config_path}")
    else:
        section("Default configuration")
        info(f"(no file at {config_path})")
    console.print(syntax)
