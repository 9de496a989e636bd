"""Configuration models using Pydantic."""

import logging
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator

from herald.config.paths import get_data_path

logger = logging.getLogger(__name__)


class DiscordConfig(BaseModel):
    """Configuration for the Discord provider."""

    bot_token: SecretStr | None = None
    # Register slash commands with Discord on startup
    sync_commands: bool = True
    # Restrict command sync to these guilds (faster propagation while testing)
    guild_ids: list[str] = []


class SchedulerConfig(BaseModel):
    """Configuration for the scheduling engine."""

    poll_interval: float = 60.0
    data_dir: Path = Field(default_factory=get_data_path)
    # Pull remote event state for every local event when the bot starts
    reconcile_on_start: bool = True

    @field_validator("poll_interval")
    @classmethod
    def _validate_poll_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll_interval must be positive")
        return value

    @field_validator("data_dir")
    @classmethod
    def _expand_data_dir(cls, value: Path) -> Path:
        return value.expanduser()


class ConfigError(Exception):
    """Configuration error."""

    pass


class HeraldConfig(BaseModel):
    """Root configuration model."""

    # IANA timezone used to interpret absolute times like "10:00"
    timezone: str = "UTC"
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    def require_bot_token(self) -> str:
        """Get the Discord bot token.

        Raises:
            ConfigError: If no token is configured.
        """
        if self.discord.bot_token is None:
            raise ConfigError(
                "No Discord bot token configured. Set [discord].bot_token "
                "or the DISCORD_BOT_TOKEN environment variable."
            )
        return self.discord.bot_token.get_secret_value()
