"""Command and notification entry points for the scheduling engine.

Handlers take a platform-neutral interaction, validate user input, and
delegate to the store, the synchronizer and the scheduler. Bad input is
reported back to the invoking user and never changes persisted state.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from herald.scheduling.parsing import (
    format_recurrence,
    format_relative_time,
    parse_duration,
    parse_recurrence,
    parse_relative_time,
    parse_time_expression,
)
from herald.scheduling.platform import EventLocationType, PlatformError, RemoteEvent
from herald.scheduling.store import ItemStore
from herald.scheduling.sync import (
    EventRequest,
    EventSynchronizer,
    EventValidationError,
)
from herald.scheduling.types import (
    EventItem,
    ItemType,
    ReminderItem,
    ScheduledItem,
)

if TYPE_CHECKING:
    from herald.scheduling.engine import Scheduler

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

TIME_USAGE = (
    "Invalid time format. Use:\n"
    "• `2h` - 2 hours from now\n"
    "• `30m` - 30 minutes from now\n"
    "• `1d` - 1 day from now\n"
    "• `10:00` - today/tomorrow at that time\n"
    "• `2026-01-20 10:00` - specific date and time"
)
RECURRENCE_USAGE = (
    "Invalid recurring format. Use:\n"
    "• `daily` or `1d` - every day\n"
    "• `weekly` or `1w` - every week\n"
    "• `every 2 weeks` or `2w` - every 2 weeks\n"
    "• `monthly` or `1m` - every month\n"
    "• `yearly` or `1y` - every year"
)
MESSAGE_REMINDER_USAGE = (
    "Invalid time format. Try: `remind me in 30s`, `remind me in 3h`, "
    "`remind me in 30m`, `remind me in 1d`"
)

_REMIND_ME = re.compile(r"^remind\s*me\s+in\s+(.+)$", re.IGNORECASE)

_TYPE_LABELS = {
    ItemType.EVENT: "Event",
    ItemType.EVENT_REMINDER: "Event reminder",
    ItemType.REMINDER: "Reminder",
}


class CommandError(Exception):
    """Bad user input; the message is shown to the invoking user."""


class CommandInteraction(Protocol):
    """A slash-command invocation."""

    @property
    def workspace_id(self) -> str: ...

    @property
    def channel_id(self) -> str: ...

    @property
    def user_id(self) -> str: ...

    def get_string(self, name: str) -> str | None: ...

    def get_integer(self, name: str) -> int | None: ...

    def get_channel_id(self, name: str) -> str | None: ...

    async def get_attachment_bytes(self, name: str) -> bytes | None: ...

    async def defer(self, *, ephemeral: bool = False) -> None: ...

    async def reply(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def edit_reply(self, content: str) -> None: ...


class ReminderMessage(Protocol):
    """A plain chat message that may contain "remind me in ..."."""

    @property
    def workspace_id(self) -> str: ...

    @property
    def channel_id(self) -> str: ...

    @property
    def message_id(self) -> str: ...

    @property
    def author_id(self) -> str: ...

    @property
    def content(self) -> str: ...

    @property
    def reference_message_id(self) -> str | None: ...

    async def react(self, emoji: str) -> None: ...

    async def reply(self, content: str) -> None: ...


AccessCheck = Callable[[CommandInteraction], Awaitable[bool]]


async def allow_all(interaction: CommandInteraction) -> bool:
    return True


def message_link(workspace_id: str, channel_id: str, message_id: str) -> str:
    return f"https://discord.com/channels/{workspace_id}/{channel_id}/{message_id}"


def discord_timestamp(instant: datetime, style: str = "F") -> str:
    """Render an instant with Discord's client-side timestamp markup."""
    return f"<t:{int(instant.timestamp())}:{style}>"


def type_label(item: ScheduledItem) -> str:
    if isinstance(item, ReminderItem) and item.is_personal:
        return "Personal reminder"
    return _TYPE_LABELS[item.type]


def format_item(item: ScheduledItem) -> str:
    return (
        f"**#{item.id}** [{type_label(item)}] - {item.label}\n"
        f"  {format_recurrence(item.recurring)} | Channel: <#{item.channel_id}>\n"
        f"  Next: {discord_timestamp(item.trigger_at, 'f')}"
    )


def format_item_list(items: list[ScheduledItem], limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Join item blocks under a header, truncating to fit one message."""
    header = "**Scheduled Items:**\n\n"
    body = header
    for index, item in enumerate(items):
        block = format_item(item)
        remaining = len(items) - index
        suffix = f"\n\n…and {remaining} more"
        separator = "" if body == header else "\n\n"
        if len(body) + len(separator) + len(block) + len(suffix) > limit:
            return body + suffix
        body += separator + block
    return body


class ScheduleCommands:
    """Entry points bridging user commands and platform notifications."""

    def __init__(
        self,
        store: ItemStore,
        synchronizer: EventSynchronizer,
        scheduler: Scheduler | None = None,
        timezone: str = "UTC",
        access_check: AccessCheck = allow_all,
    ):
        self._store = store
        self._sync = synchronizer
        self._scheduler = scheduler
        self._timezone = timezone
        self._access_check = access_check

    async def _authorize(self, interaction: CommandInteraction, action: str) -> bool:
        if await self._access_check(interaction):
            return True
        logger.warning(
            "command_permission_denied",
            extra={
                "workspace.id": interaction.workspace_id,
                "user.id": interaction.user_id,
                "command.action": action,
            },
        )
        await interaction.reply(
            f"You do not have permission to {action} scheduled items.",
            ephemeral=True,
        )
        return False

    async def _report(
        self, interaction: CommandInteraction, command: str, error: Exception
    ) -> None:
        if isinstance(error, CommandError | EventValidationError):
            await interaction.edit_reply(str(error))
            return
        if isinstance(error, PlatformError):
            logger.warning(
                "command_platform_error",
                extra={
                    "command.name": command,
                    "workspace.id": interaction.workspace_id,
                    "error.message": str(error),
                },
            )
            await interaction.edit_reply(f"Discord rejected the request: {error}")
            return
        logger.exception(
            "command_failed",
            extra={
                "command.name": command,
                "workspace.id": interaction.workspace_id,
                "user.id": interaction.user_id,
            },
        )
        await interaction.edit_reply(f"Error: {error}")

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    async def handle_event_command(self, interaction: CommandInteraction) -> None:
        """Create a scheduled event, plus an event reminder if requested."""
        if not await self._authorize(interaction, "add"):
            return
        await interaction.defer()
        try:
            request = await self._event_request(interaction)
            created = await self._sync.create_event(request)
        except Exception as e:
            await self._report(interaction, "event", e)
            return

        lines = [
            f"Event #{created.event.id} created!",
            f"**Name:** {created.event.event_name}",
            f"**Starts:** {discord_timestamp(created.event.trigger_at)}",
        ]
        if created.reminder is not None:
            lines.append(
                f"**Reminder:** {format_relative_time(created.reminder.remind_before)}"
                f" before (#{created.reminder.id})"
            )
        if created.remote.url:
            lines.append(f"**Link:** {created.remote.url}")
        await interaction.edit_reply("\n".join(lines))

    async def _event_request(self, interaction: CommandInteraction) -> EventRequest:
        name = (interaction.get_string("name") or "").strip()
        if not name:
            raise CommandError("Please provide an event name.")

        start_text = interaction.get_string("start")
        start = parse_time_expression(start_text, timezone=self._timezone)
        if start is None:
            raise CommandError(TIME_USAGE)

        remind_before = None
        if remind_text := interaction.get_string("remind_before"):
            remind_before = parse_duration(remind_text)
            if remind_before is None:
                raise CommandError(
                    "Invalid reminder offset. Use a duration like `15m`, `1h` or `1d`."
                )

        raw_type = (interaction.get_string("type") or EventLocationType.VOICE).lower()
        try:
            location_type = EventLocationType(raw_type)
        except ValueError:
            raise CommandError(
                "Event type must be one of: voice, stage, external."
            ) from None

        return EventRequest(
            workspace_id=interaction.workspace_id,
            channel_id=interaction.channel_id,
            creator_id=interaction.user_id,
            name=name,
            start_time=start,
            description=interaction.get_string("description"),
            remind_before=remind_before,
            location_type=location_type,
            event_channel_id=interaction.get_channel_id("channel"),
            location=interaction.get_string("location"),
            cover_image=await interaction.get_attachment_bytes("image"),
        )

    async def handle_reminder_command(self, interaction: CommandInteraction) -> None:
        """Create a standalone reminder, optionally recurring."""
        if not await self._authorize(interaction, "add"):
            return
        await interaction.defer()
        try:
            message = (interaction.get_string("message") or "").strip()
            if not message:
                raise CommandError("Please provide a message.")

            trigger_at = parse_time_expression(
                interaction.get_string("at"), timezone=self._timezone
            )
            if trigger_at is None:
                raise CommandError(TIME_USAGE)

            recurring = None
            if recurring_text := interaction.get_string("recurring"):
                recurring = parse_recurrence(recurring_text)
                if recurring is None:
                    raise CommandError(RECURRENCE_USAGE)

            async with self._store.mutate(interaction.workspace_id) as collection:
                item = ReminderItem(
                    id=collection.next_id(),
                    workspace_id=interaction.workspace_id,
                    channel_id=interaction.channel_id,
                    creator_id=interaction.user_id,
                    trigger_at=trigger_at,
                    recurring=recurring,
                    message=message,
                )
                collection.add(item)
        except Exception as e:
            await self._report(interaction, "reminder", e)
            return

        logger.info(
            "reminder_created",
            extra={
                "workspace.id": item.workspace_id,
                "schedule.item_id": item.id,
                "schedule.trigger_at": item.trigger_at.isoformat(),
                "schedule.recurring": format_recurrence(recurring),
            },
        )
        await interaction.edit_reply(
            f"Reminder #{item.id} created!\n"
            f"**Message:** {message}\n"
            f"**Next trigger:** {discord_timestamp(trigger_at)}\n"
            f"**Recurring:** {format_recurrence(recurring)}\n"
            f"**Channel:** <#{item.channel_id}>"
        )

    async def handle_remove_command(self, interaction: CommandInteraction) -> None:
        """Remove an item by id; events take their reminders and remote event along."""
        if not await self._authorize(interaction, "remove"):
            return
        await interaction.defer()
        try:
            item_id = interaction.get_integer("id")
            if not item_id:
                raise CommandError("Please provide an ID to remove.")
            item_type = self._item_type(interaction.get_string("type"))

            result = await self._sync.remove_item(
                interaction.workspace_id, item_id, item_type
            )
        except Exception as e:
            await self._report(interaction, "remove", e)
            return

        if result is None:
            type_str = f' of type "{item_type.value}"' if item_type else ""
            await interaction.edit_reply(f"Item #{item_id}{type_str} not found.")
            return

        item = result.item
        content = f'Removed {type_label(item)} #{item.id}: "{item.label}"'
        if result.cascaded:
            count = len(result.cascaded)
            content += f"\nAlso removed {count} linked reminder{'s' if count > 1 else ''}."
        if isinstance(item, EventItem) and not result.remote_deleted:
            content += "\nThe Discord event could not be deleted; remove it manually."
        await interaction.edit_reply(content)

    async def handle_show_command(self, interaction: CommandInteraction) -> None:
        """List active items, optionally filtered by type."""
        if not await self._authorize(interaction, "view"):
            return
        await interaction.defer(ephemeral=True)
        try:
            item_type = self._item_type(interaction.get_string("type"))
            collection = await self._store.load(interaction.workspace_id)
        except Exception as e:
            await self._report(interaction, "show", e)
            return

        items = collection.active_items(item_type)
        if not items:
            noun = f"{item_type.value}s" if item_type else "items"
            await interaction.edit_reply(f"No active {noun} scheduled.")
            return
        await interaction.edit_reply(format_item_list(items))

    async def handle_check_command(self, interaction: CommandInteraction) -> None:
        """Run one trigger-engine tick now."""
        if not await self._authorize(interaction, "check"):
            return
        await interaction.defer(ephemeral=True)
        if self._scheduler is None or not self._scheduler.accepting_ticks:
            await interaction.edit_reply("The scheduler is not running.")
            return
        report = await self._scheduler.check_all_items()
        if report.skipped:
            await interaction.edit_reply("A check is already in progress.")
            return
        await interaction.edit_reply(
            f"Checked {report.workspaces} server(s): "
            f"{report.fired} fired, {report.failed} failed."
        )

    @staticmethod
    def _item_type(value: str | None) -> ItemType | None:
        if not value:
            return None
        try:
            return ItemType(value.lower())
        except ValueError:
            choices = ", ".join(t.value for t in ItemType)
            raise CommandError(f"Type must be one of: {choices}.") from None

    # ------------------------------------------------------------------
    # Messages and platform notifications
    # ------------------------------------------------------------------

    async def handle_message_reminder(self, message: ReminderMessage) -> bool:
        """Handle "remind me in <duration>" as a personal reminder.

        The reminder links to the replied-to message if there is one,
        otherwise to the triggering message.

        Returns:
            True if the message was a reminder request (handled or rejected).
        """
        match = _REMIND_ME.match(message.content.strip())
        if not match:
            return False

        trigger_at = parse_relative_time(match.group(1).strip())
        if trigger_at is None:
            logger.info(
                "message_reminder_invalid",
                extra={"workspace.id": message.workspace_id, "user.id": message.author_id},
            )
            await message.reply(MESSAGE_REMINDER_USAGE)
            return True

        target = message.reference_message_id or message.message_id
        link = message_link(message.workspace_id, message.channel_id, target)

        try:
            async with self._store.mutate(message.workspace_id) as collection:
                item = ReminderItem(
                    id=collection.next_id(),
                    workspace_id=message.workspace_id,
                    channel_id=message.channel_id,
                    creator_id=message.author_id,
                    trigger_at=trigger_at,
                    message_link=link,
                )
                collection.add(item)
            await message.react("👍")
        except Exception:
            logger.exception(
                "message_reminder_failed",
                extra={"workspace.id": message.workspace_id, "user.id": message.author_id},
            )
            await message.reply("Sorry, something went wrong creating your reminder.")
            return True

        logger.info(
            "message_reminder_created",
            extra={
                "workspace.id": message.workspace_id,
                "schedule.item_id": item.id,
                "schedule.time_until": format_relative_time(
                    trigger_at - datetime.now(UTC)
                ),
                "schedule.is_reply": message.reference_message_id is not None,
            },
        )
        return True

    async def handle_scheduled_event_update(
        self, before: RemoteEvent | None, after: RemoteEvent
    ) -> list[ScheduledItem]:
        return await self._sync.handle_remote_update(before, after)

    async def handle_scheduled_event_delete(
        self, event: RemoteEvent
    ) -> list[ScheduledItem]:
        return await self._sync.handle_remote_delete(event)
