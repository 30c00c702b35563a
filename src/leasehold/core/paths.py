"""Centralized path management for leasehold."""

import os
from pathlib import Path

LEASEHOLD_HOME = Path.home() / ".leasehold"

# Configuration file, overridable for tests and containers
CONFIG_FILE = Path(os.environ.get("LEASEHOLD_CONFIG", LEASEHOLD_HOME / "config.yaml"))
