"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from herald.config.models import HeraldConfig
from herald.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.herald/config.toml (or HERALD_HOME)
        Path("/etc/herald/config.toml"),  # System-wide
    ]


def _set_secret_from_env(section: dict[str, Any], key: str, env_var: str) -> None:
    """Set a secret value from environment if not already set."""
    if section.get(key) is None:
        value = os.environ.get(env_var)
        if value:
            section[key] = SecretStr(value)


def _resolve_env_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Resolve secrets from environment variables where not set in config."""
    discord = config.setdefault("discord", {})
    if discord is None:
        discord = config["discord"] = {}
    _set_secret_from_env(discord, "bot_token", "DISCORD_BOT_TOKEN")
    return config


def find_config_path(path: Path | None = None) -> Path | None:
    """Resolve the config file that would be loaded, if any."""
    if path is not None:
        return Path(path).expanduser()
    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(path: Path | None = None) -> HeraldConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated HeraldConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ValueError: If config file is invalid.
    """
    config_path = find_config_path(path)

    if config_path is None:
        searched = ", ".join(str(p) for p in _get_default_config_paths())
        raise FileNotFoundError(f"No config file found. Searched: {searched}")
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("rb") as f:
        raw_config = tomllib.load(f)

    raw_config = _resolve_env_secrets(raw_config)

    return HeraldConfig.model_validate(raw_config)


def get_default_config() -> HeraldConfig:
    """Get a default configuration, with secrets taken from the environment."""
    return HeraldConfig.model_validate(_resolve_env_secrets({}))
