"""Delivers notifications for due items."""

import logging
from datetime import datetime

from herald.scheduling.parsing import format_relative_time
from herald.scheduling.platform import (
    AllowedMentions,
    PlatformClient,
    PlatformError,
    RemoteNotFoundError,
)
from herald.scheduling.sync import detach_event
from herald.scheduling.types import (
    EventItem,
    EventReminderItem,
    ItemCollection,
    ReminderItem,
    ScheduledItem,
)

logger = logging.getLogger(__name__)


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def dedupe(ids: list[str]) -> list[str]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


class ReminderExecutor:
    """Sends the notification for a due item.

    Delivery errors propagate to the caller; errors reading remote state
    (participants) are handled here.
    """

    def __init__(self, client: PlatformClient) -> None:
        self._client = client

    async def fire(
        self, item: ScheduledItem, collection: ItemCollection, now: datetime
    ) -> bool:
        """Dispatch a due item by type.

        Returns:
            True if a notification was sent.
        """
        if isinstance(item, EventReminderItem):
            return await self._fire_event_reminder(item, collection, now)
        if isinstance(item, ReminderItem):
            await self._fire_reminder(item)
            return True
        if isinstance(item, EventItem):
            logger.debug(
                "event_already_started",
                extra={
                    "workspace.id": item.workspace_id,
                    "schedule.item_id": item.id,
                    "event.remote_id": item.scheduled_event_id,
                },
            )
            return False
        logger.warning("unknown_item_type", extra={"schedule.item_id": item.id})
        return False

    async def _fire_event_reminder(
        self, item: EventReminderItem, collection: ItemCollection, now: datetime
    ) -> bool:
        event = collection.find_event(item.linked_event_id)
        if event is None:
            logger.warning(
                "orphaned_event_reminder",
                extra={
                    "workspace.id": item.workspace_id,
                    "schedule.item_id": item.id,
                    "event.remote_id": item.linked_event_id,
                },
            )
            return False

        try:
            subscribers = await self._client.fetch_event_subscribers(
                item.workspace_id, item.linked_event_id
            )
        except RemoteNotFoundError:
            removed = detach_event(collection, item.linked_event_id)
            logger.info(
                "remote_event_missing",
                extra={
                    "workspace.id": item.workspace_id,
                    "event.remote_id": item.linked_event_id,
                    "schedule.item_ids": [i.id for i in removed],
                },
            )
            return False
        except PlatformError as e:
            logger.error(
                "event_subscribers_fetch_failed",
                extra={
                    "workspace.id": item.workspace_id,
                    "schedule.item_id": item.id,
                    "error.message": str(e),
                },
            )
            return False

        recipients = dedupe([item.creator_id, *subscribers])
        countdown = format_relative_time(event.trigger_at - now)
        content = (
            f"⏰ **{event.event_name}** starts in {countdown}!\n"
            + " ".join(mention(user_id) for user_id in recipients)
        )

        await self._client.send_message(
            item.channel_id,
            content,
            allowed_mentions=AllowedMentions(users=recipients),
        )
        logger.info(
            "event_reminder_sent",
            extra={
                "workspace.id": item.workspace_id,
                "schedule.item_id": item.id,
                "event.remote_id": item.linked_event_id,
                "schedule.recipients": len(recipients),
            },
        )
        return True

    async def _fire_reminder(self, item: ReminderItem) -> None:
        if item.is_personal:
            content = f"{mention(item.creator_id)} **Reminder:** {item.message_link}"
            allowed = AllowedMentions(users=[item.creator_id])
        else:
            content = f"@everyone **Reminder:** {item.message}"
            allowed = AllowedMentions(everyone=True)

        await self._client.send_message(
            item.channel_id, content, allowed_mentions=allowed
        )
        logger.info(
            "reminder_sent",
            extra={
                "workspace.id": item.workspace_id,
                "schedule.item_id": item.id,
                "schedule.personal": item.is_personal,
            },
        )
