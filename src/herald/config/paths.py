"""Centralized path management for Herald.

All state (config, schedule data, logs) is stored under a single base directory.
The base directory can be overridden with the HERALD_HOME environment variable.

Default locations:
- Linux/macOS: ~/.herald
- Windows: %USERPROFILE%\\.herald
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "HERALD_HOME"

SCHEDULE_FILENAME = "scheduled.json"


@lru_cache(maxsize=1)
def get_herald_home() -> Path:
    """Get the base directory for all Herald data.

    Resolution order:
    1. HERALD_HOME environment variable (if set)
    2. Platform default (~/.herald)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".herald"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_herald_home() / "config.toml"


def get_data_path() -> Path:
    """Get the data directory (one subdirectory per workspace)."""
    return get_herald_home() / "data"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_herald_home() / "logs"


def get_schedule_file(workspace_id: str, data_dir: Path | None = None) -> Path:
    """Get the schedule document for a workspace.

    Structure: data/{workspace_id}/scheduled.json
    """
    base = data_dir if data_dir is not None else get_data_path()
    return base / workspace_id / SCHEDULE_FILENAME
