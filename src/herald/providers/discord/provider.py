"""Discord provider using discord.py."""

import logging

import discord
from discord import app_commands

from herald.providers.discord.client import DiscordPlatformClient, to_remote_event
from herald.providers.discord.handlers import IncomingMessage, SlashInteraction
from herald.scheduling.service import SchedulingService

logger = logging.getLogger(__name__)

_EVENT_TYPES = [
    app_commands.Choice(name="Voice channel", value="voice"),
    app_commands.Choice(name="Stage channel", value="stage"),
    app_commands.Choice(name="Somewhere else", value="external"),
]
_ITEM_TYPES = [
    app_commands.Choice(name="Event", value="event"),
    app_commands.Choice(name="Event reminder", value="event_reminder"),
    app_commands.Choice(name="Reminder", value="reminder"),
]


def _choice(value: app_commands.Choice[str] | None) -> str | None:
    return value.value if value is not None else None


class HeraldClient(discord.Client):
    """discord.Client that forwards lifecycle hooks to the provider."""

    def __init__(self, provider: "DiscordProvider", intents: discord.Intents):
        super().__init__(intents=intents, allowed_mentions=discord.AllowedMentions.none())
        self.tree = app_commands.CommandTree(self)
        self._provider = provider

    async def setup_hook(self) -> None:
        await self._provider.sync_commands()


class DiscordProvider:
    """Runs the Discord bot and bridges it into the scheduling service.

    Registers the scheduling slash commands, forwards scheduled-event
    updates/deletions and "remind me in" messages, and binds the scheduler
    once the gateway session is ready.
    """

    def __init__(
        self,
        bot_token: str,
        service: SchedulingService,
        *,
        sync_commands: bool = True,
        guild_ids: list[str] | None = None,
    ):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guild_scheduled_events = True

        self._token = bot_token
        self._service = service
        self._sync_commands = sync_commands
        self._guild_ids = guild_ids or []
        self._client = HeraldClient(self, intents)
        self._platform = DiscordPlatformClient(self._client)
        self._setup_handlers()
        self._setup_commands()

    @property
    def name(self) -> str:
        return "discord"

    @property
    def client(self) -> discord.Client:
        return self._client

    async def start(self) -> None:
        """Connect and run until closed."""
        logger.info("discord_connecting")
        async with self._client:
            await self._client.start(self._token)

    async def stop(self) -> None:
        await self._service.stop()
        if not self._client.is_closed():
            await self._client.close()

    async def sync_commands(self) -> None:
        if not self._sync_commands:
            return
        tree = self._client.tree
        if self._guild_ids:
            for guild_id in self._guild_ids:
                guild = discord.Object(id=int(guild_id))
                tree.copy_global_to(guild=guild)
                synced = await tree.sync(guild=guild)
                logger.info(
                    "commands_synced",
                    extra={"workspace.id": guild_id, "command.count": len(synced)},
                )
        else:
            synced = await tree.sync()
            logger.info("commands_synced", extra={"command.count": len(synced)})

    def _setup_handlers(self) -> None:
        client = self._client
        commands = self._service.commands

        @client.event
        async def on_ready() -> None:
            logger.info(
                "discord_ready",
                extra={
                    "discord.user": str(client.user),
                    "discord.guilds": len(client.guilds),
                },
            )
            await self._service.initialize(self._platform)

        @client.event
        async def on_scheduled_event_update(
            before: discord.ScheduledEvent, after: discord.ScheduledEvent
        ) -> None:
            try:
                await commands.handle_scheduled_event_update(
                    to_remote_event(before), to_remote_event(after)
                )
            except Exception:
                logger.exception(
                    "scheduled_event_update_failed",
                    extra={"event.remote_id": str(after.id)},
                )

        @client.event
        async def on_scheduled_event_delete(event: discord.ScheduledEvent) -> None:
            try:
                await commands.handle_scheduled_event_delete(to_remote_event(event))
            except Exception:
                logger.exception(
                    "scheduled_event_delete_failed",
                    extra={"event.remote_id": str(event.id)},
                )

        @client.event
        async def on_message(message: discord.Message) -> None:
            if message.author.bot or message.guild is None:
                return
            await commands.handle_message_reminder(IncomingMessage(message))

    def _setup_commands(self) -> None:
        tree = self._client.tree
        commands = self._service.commands

        @tree.command(name="event", description="Create a Discord event")
        @app_commands.guild_only()
        @app_commands.rename(kind="type")
        @app_commands.describe(
            name="Event name",
            start="When it starts: 2h, 30m, 10:00, 2026-01-20 10:00",
            kind="Where it happens",
            description="Event description",
            remind_before="Remind interested members this long before: 15m, 1h",
            channel="Voice or stage channel for the event",
            location="Location for events held somewhere else",
            image="Cover image",
        )
        @app_commands.choices(kind=_EVENT_TYPES)
        async def event(
            interaction: discord.Interaction,
            name: str,
            start: str,
            kind: app_commands.Choice[str] | None = None,
            description: str | None = None,
            remind_before: str | None = None,
            channel: discord.VoiceChannel | discord.StageChannel | None = None,
            location: str | None = None,
            image: discord.Attachment | None = None,
        ) -> None:
            await commands.handle_event_command(
                SlashInteraction(
                    interaction,
                    {
                        "name": name,
                        "start": start,
                        "type": _choice(kind),
                        "description": description,
                        "remind_before": remind_before,
                        "channel": channel,
                        "location": location,
                        "image": image,
                    },
                )
            )

        @tree.command(name="reminder", description="Schedule a reminder for everyone")
        @app_commands.guild_only()
        @app_commands.describe(
            at="When: 2h, 30m, 1d, 10:00, 2026-01-20 10:00",
            message="What to remind everyone about",
            recurring="Repeat: daily, weekly, every 2 weeks, 1m, 1y",
        )
        async def reminder(
            interaction: discord.Interaction,
            at: str,
            message: str,
            recurring: str | None = None,
        ) -> None:
            await commands.handle_reminder_command(
                SlashInteraction(
                    interaction,
                    {"at": at, "message": message, "recurring": recurring},
                )
            )

        @tree.command(name="remove", description="Remove a scheduled item")
        @app_commands.guild_only()
        @app_commands.rename(item_id="id", kind="type")
        @app_commands.describe(item_id="Item number", kind="Only match this type")
        @app_commands.choices(kind=_ITEM_TYPES)
        async def remove(
            interaction: discord.Interaction,
            item_id: app_commands.Range[int, 1],
            kind: app_commands.Choice[str] | None = None,
        ) -> None:
            await commands.handle_remove_command(
                SlashInteraction(interaction, {"id": item_id, "type": _choice(kind)})
            )

        @tree.command(name="show", description="List active scheduled items")
        @app_commands.guild_only()
        @app_commands.rename(kind="type")
        @app_commands.describe(kind="Only show this type")
        @app_commands.choices(kind=_ITEM_TYPES)
        async def show(
            interaction: discord.Interaction,
            kind: app_commands.Choice[str] | None = None,
        ) -> None:
            await commands.handle_show_command(
                SlashInteraction(interaction, {"type": _choice(kind)})
            )

        @tree.command(name="schedule-check", description="Fire due items now")
        @app_commands.guild_only()
        async def schedule_check(interaction: discord.Interaction) -> None:
            await commands.handle_check_command(SlashInteraction(interaction, {}))
