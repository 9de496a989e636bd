"""Communication providers."""

from herald.providers.discord import DiscordPlatformClient, DiscordProvider

__all__ = [
    "DiscordPlatformClient",
    "DiscordProvider",
]
