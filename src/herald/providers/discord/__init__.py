"""Discord provider."""

from herald.providers.discord.client import DiscordPlatformClient, to_remote_event
from herald.providers.discord.handlers import IncomingMessage, SlashInteraction
from herald.providers.discord.provider import DiscordProvider

__all__ = [
    "DiscordPlatformClient",
    "DiscordProvider",
    "IncomingMessage",
    "SlashInteraction",
    "to_remote_event",
]
