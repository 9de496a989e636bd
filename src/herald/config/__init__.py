"""Configuration module."""

from herald.config.loader import find_config_path, get_default_config, load_config
from herald.config.models import (
    ConfigError,
    DiscordConfig,
    HeraldConfig,
    SchedulerConfig,
)
from herald.config.paths import (
    get_config_path,
    get_data_path,
    get_herald_home,
    get_logs_path,
    get_schedule_file,
)

__all__ = [
    "ConfigError",
    "DiscordConfig",
    "HeraldConfig",
    "SchedulerConfig",
    "find_config_path",
    "get_config_path",
    "get_data_path",
    "get_default_config",
    "get_herald_home",
    "get_logs_path",
    "get_schedule_file",
    "load_config",
]
