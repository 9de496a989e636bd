"""Synchronization between local event items and remote scheduled events.

Outbound: creating an event creates the remote object first, then the local
items; removing an event removes its reminders and the remote object.

Inbound: edits and deletions made on the platform are applied to every local
item that references the remote event. Remote state is authoritative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from herald.scheduling.platform import (
    EventLocationType,
    PlatformClient,
    PlatformError,
    RemoteEvent,
    RemoteNotFoundError,
    ScheduledEventSpec,
)
from herald.scheduling.store import ItemStore
from herald.scheduling.types import (
    EventItem,
    EventReminderItem,
    ItemCollection,
    ItemType,
    ScheduledItem,
)

logger = logging.getLogger(__name__)


class EventValidationError(ValueError):
    """An event request is invalid; nothing was created."""


@dataclass
class EventRequest:
    """Everything needed to create an event and its optional reminder."""

    workspace_id: str
    channel_id: str
    creator_id: str
    name: str
    start_time: datetime
    description: str | None = None
    remind_before: timedelta | None = None
    location_type: EventLocationType = EventLocationType.VOICE
    event_channel_id: str | None = None
    location: str | None = None
    cover_image: bytes | None = None


@dataclass
class CreatedEvent:
    remote: RemoteEvent
    event: EventItem
    reminder: EventReminderItem | None = None


@dataclass
class RemovalResult:
    """Items removed by a single removal request, primary item first."""

    removed: list[ScheduledItem] = field(default_factory=list)
    remote_deleted: bool = False

    @property
    def item(self) -> ScheduledItem:
        return self.removed[0]

    @property
    def cascaded(self) -> list[ScheduledItem]:
        return self.removed[1:]


def apply_remote_state(
    collection: ItemCollection, remote: RemoteEvent, now: datetime
) -> list[ScheduledItem]:
    """Copy remote event state onto the local event and its reminders.

    Items whose trigger instant moves into the future are re-armed.

    Returns:
        The items that changed (empty if nothing references the event).
    """
    changed: list[ScheduledItem] = []

    event = collection.find_event(remote.id)
    if event is not None:
        before = (
            event.event_name,
            event.description,
            event.cover_image_url,
            event.trigger_at,
            event.active,
        )
        event.event_name = remote.name
        event.description = remote.description
        event.cover_image_url = remote.cover_image_url
        if remote.location is not None:
            event.location = remote.location
        if event.trigger_at != remote.start_time:
            event.reschedule(remote.start_time)
            if remote.start_time > now:
                event.active = True
        after = (
            event.event_name,
            event.description,
            event.cover_image_url,
            event.trigger_at,
            event.active,
        )
        if before != after:
            changed.append(event)

    for reminder in collection.reminders_for(remote.id):
        before = (reminder.event_name, reminder.trigger_at, reminder.active)
        reminder.event_name = remote.name
        reminder.align_to(remote.start_time)
        if reminder.trigger_at != before[1] and reminder.trigger_at > now:
            reminder.active = True
        if (reminder.event_name, reminder.trigger_at, reminder.active) != before:
            changed.append(reminder)

    if changed:
        collection.mark_dirty()
    return changed


def detach_event(collection: ItemCollection, remote_id: str) -> list[ScheduledItem]:
    """Remove the local event and its reminders. Never touches the platform."""
    removed: list[ScheduledItem] = []
    event = collection.find_event(remote_id)
    if event is not None:
        collection.remove(event)
        removed.append(event)
    for reminder in collection.reminders_for(remote_id):
        collection.remove(reminder)
        removed.append(reminder)
    return removed


class EventSynchronizer:
    """Keeps local event items and remote scheduled events consistent."""

    def __init__(self, store: ItemStore, client: PlatformClient | None = None) -> None:
        self._store = store
        self.client = client

    def _require_client(self) -> PlatformClient:
        if self.client is None:
            raise PlatformError("Platform client not initialized")
        return self.client

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def create_event(
        self, request: EventRequest, now: datetime | None = None
    ) -> CreatedEvent:
        """Create the remote event, then the local event (and reminder) items.

        Raises:
            EventValidationError: If the request is invalid.
            PlatformError: If the remote event could not be created.
        """
        now = now or datetime.now(UTC)
        if not request.name.strip():
            raise EventValidationError("Event name is required")
        if request.start_time <= now:
            raise EventValidationError("Event start must be in the future")
        if request.remind_before is not None:
            if request.remind_before <= timedelta(0):
                raise EventValidationError("Reminder offset must be positive")
            if request.start_time - request.remind_before <= now:
                raise EventValidationError("Reminder would fire in the past")
        if request.location_type == EventLocationType.EXTERNAL:
            if not request.location:
                raise EventValidationError("External events need a location")
        elif not request.event_channel_id:
            raise EventValidationError("Voice and stage events need a channel")

        client = self._require_client()
        remote = await client.create_scheduled_event(
            request.workspace_id,
            ScheduledEventSpec(
                name=request.name,
                start_time=request.start_time,
                location_type=request.location_type,
                description=request.description,
                channel_id=request.event_channel_id,
                location=request.location,
                cover_image=request.cover_image,
            ),
        )

        try:
            async with self._store.mutate(request.workspace_id) as collection:
                event = EventItem(
                    id=collection.next_id(),
                    workspace_id=request.workspace_id,
                    channel_id=request.channel_id,
                    creator_id=request.creator_id,
                    trigger_at=remote.start_time,
                    scheduled_event_id=remote.id,
                    event_name=remote.name,
                    description=remote.description,
                    cover_image_url=remote.cover_image_url,
                    location=request.location,
                    event_channel_id=request.event_channel_id,
                    created_date=now,
                )
                collection.add(event)

                reminder = None
                if request.remind_before is not None:
                    reminder = EventReminderItem(
                        id=collection.next_id(),
                        workspace_id=request.workspace_id,
                        channel_id=request.channel_id,
                        creator_id=request.creator_id,
                        trigger_at=remote.start_time - request.remind_before,
                        linked_event_id=remote.id,
                        event_name=remote.name,
                        remind_before_ms=int(
                            request.remind_before.total_seconds() * 1000
                        ),
                        created_date=now,
                    )
                    collection.add(reminder)
        except Exception:
            # Don't leave a remote event nothing local points at
            await self._delete_remote(request.workspace_id, remote.id)
            raise

        logger.info(
            "event_created",
            extra={
                "workspace.id": request.workspace_id,
                "schedule.item_id": event.id,
                "event.remote_id": remote.id,
                "event.start": remote.start_time.isoformat(),
                "schedule.reminder_id": reminder.id if reminder else None,
            },
        )
        return CreatedEvent(remote=remote, event=event, reminder=reminder)

    async def remove_item(
        self,
        workspace_id: str,
        item_id: int,
        item_type: ItemType | None = None,
    ) -> RemovalResult | None:
        """Remove an item; events cascade to reminders and the remote event.

        Returns:
            What was removed, or None if no such item exists.
        """
        async with self._store.mutate(workspace_id) as collection:
            item = collection.get(item_id, item_type)
            if item is None:
                return None
            collection.remove(item)
            result = RemovalResult(removed=[item])
            if isinstance(item, EventItem):
                for reminder in collection.reminders_for(item.scheduled_event_id):
                    collection.remove(reminder)
                    result.removed.append(reminder)

        if isinstance(item, EventItem):
            result.remote_deleted = await self._delete_remote(
                workspace_id, item.scheduled_event_id
            )

        logger.info(
            "item_removed",
            extra={
                "workspace.id": workspace_id,
                "schedule.item_id": item_id,
                "schedule.type": item.type.value,
                "schedule.cascaded": [i.id for i in result.cascaded],
            },
        )
        return result

    async def _delete_remote(self, workspace_id: str, remote_id: str) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.delete_scheduled_event(workspace_id, remote_id)
        except RemoteNotFoundError:
            # Already gone counts as deleted
            return True
        except PlatformError as e:
            logger.warning(
                "remote_event_delete_failed",
                extra={
                    "workspace.id": workspace_id,
                    "event.remote_id": remote_id,
                    "error.message": str(e),
                },
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_remote_update(
        self, before: RemoteEvent | None, after: RemoteEvent
    ) -> list[ScheduledItem]:
        """Apply a remote edit to the local items that reference the event."""
        now = datetime.now(UTC)
        async with self._store.mutate(after.workspace_id) as collection:
            changed = apply_remote_state(collection, after, now)

        if not changed:
            logger.debug(
                "remote_update_ignored",
                extra={"workspace.id": after.workspace_id, "event.remote_id": after.id},
            )
            return []

        logger.info(
            "remote_update_synced",
            extra={
                "workspace.id": after.workspace_id,
                "event.remote_id": after.id,
                "event.old_name": before.name if before else None,
                "event.name": after.name,
                "event.start": after.start_time.isoformat(),
                "schedule.item_ids": [item.id for item in changed],
            },
        )
        return changed

    async def handle_remote_delete(self, remote: RemoteEvent) -> list[ScheduledItem]:
        """Drop the local event and reminders for a remotely deleted event."""
        return await self.forget_event(remote.workspace_id, remote.id)

    async def forget_event(
        self, workspace_id: str, remote_id: str
    ) -> list[ScheduledItem]:
        async with self._store.mutate(workspace_id) as collection:
            removed = detach_event(collection, remote_id)

        if removed:
            logger.info(
                "remote_delete_synced",
                extra={
                    "workspace.id": workspace_id,
                    "event.remote_id": remote_id,
                    "schedule.item_ids": [item.id for item in removed],
                },
            )
        return removed

    async def reconcile(self, workspace_id: str) -> int:
        """Pull remote state for every active local event in a workspace.

        Returns:
            Number of events that were updated or removed.
        """
        client = self._require_client()
        now = datetime.now(UTC)
        touched = 0

        async with self._store.mutate(workspace_id) as collection:
            events = [
                item
                for item in collection.items
                if isinstance(item, EventItem) and item.active
            ]
            for event in events:
                try:
                    remote = await client.fetch_scheduled_event(
                        workspace_id, event.scheduled_event_id
                    )
                except RemoteNotFoundError:
                    detach_event(collection, event.scheduled_event_id)
                    touched += 1
                    continue
                except PlatformError as e:
                    logger.warning(
                        "reconcile_fetch_failed",
                        extra={
                            "workspace.id": workspace_id,
                            "event.remote_id": event.scheduled_event_id,
                            "error.message": str(e),
                        },
                    )
                    continue
                if apply_remote_state(collection, remote, now):
                    touched += 1

        if touched:
            logger.info(
                "workspace_reconciled",
                extra={"workspace.id": workspace_id, "schedule.touched": touched},
            )
        return touched
