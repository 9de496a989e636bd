"""Shared test fixtures and fakes."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from herald.config.models import HeraldConfig, SchedulerConfig
from herald.scheduling.commands import ScheduleCommands
from herald.scheduling.engine import Scheduler
from herald.scheduling.platform import (
    AllowedMentions,
    RemoteEvent,
    RemoteNotFoundError,
    ScheduledEventSpec,
)
from herald.scheduling.store import ItemStore
from herald.scheduling.sync import EventSynchronizer
from herald.scheduling.types import (
    EventItem,
    EventReminderItem,
    ReminderItem,
)

WORKSPACE = "guild-1"
CHANNEL = "chan-1"
CREATOR = "user-1"

# =============================================================================
# Platform Fakes
# =============================================================================


@dataclass
class SentMessage:
    channel_id: str
    content: str
    allowed_mentions: AllowedMentions


class FakePlatformClient:
    """In-memory platform: guilds, scheduled events and their subscribers."""

    def __init__(self, workspaces: list[str] | None = None):
        self.workspaces = workspaces if workspaces is not None else [WORKSPACE]
        self.sent: list[SentMessage] = []
        self.events: dict[str, RemoteEvent] = {}
        self.subscribers: dict[str, list[str]] = {}
        self.created_specs: list[ScheduledEventSpec] = []
        self.deleted: list[str] = []
        self.send_errors: dict[str, Exception] = {}
        self.subscriber_errors: dict[str, Exception] = {}
        self.create_error: Exception | None = None
        self.fetch_errors: dict[str, Exception] = {}
        self._next_id = 9000

    def workspace_ids(self) -> list[str]:
        return list(self.workspaces)

    async def send_message(
        self,
        channel_id: str,
        content: str,
        *,
        allowed_mentions: AllowedMentions,
    ) -> None:
        if error := self.send_errors.get(channel_id):
            raise error
        self.sent.append(SentMessage(channel_id, content, allowed_mentions))

    async def create_scheduled_event(
        self, workspace_id: str, spec: ScheduledEventSpec
    ) -> RemoteEvent:
        if self.create_error is not None:
            raise self.create_error
        self._next_id += 1
        event_id = str(self._next_id)
        self.created_specs.append(spec)
        return self.add_event(
            RemoteEvent(
                id=event_id,
                workspace_id=workspace_id,
                name=spec.name,
                start_time=spec.start_time,
                description=spec.description,
                channel_id=spec.channel_id,
                location=spec.location,
                url=f"https://discord.com/events/{workspace_id}/{event_id}",
            )
        )

    def add_event(self, event: RemoteEvent) -> RemoteEvent:
        self.events[event.id] = event
        self.subscribers.setdefault(event.id, [])
        return event

    async def fetch_scheduled_event(
        self, workspace_id: str, event_id: str
    ) -> RemoteEvent:
        if error := self.fetch_errors.get(event_id):
            raise error
        if event_id not in self.events:
            raise RemoteNotFoundError(f"Unknown event {event_id}")
        return self.events[event_id]

    async def delete_scheduled_event(self, workspace_id: str, event_id: str) -> None:
        self.deleted.append(event_id)
        if self.events.pop(event_id, None) is None:
            raise RemoteNotFoundError(f"Unknown event {event_id}")

    async def fetch_event_subscribers(
        self, workspace_id: str, event_id: str
    ) -> list[str]:
        if error := self.subscriber_errors.get(event_id):
            raise error
        if event_id not in self.events:
            raise RemoteNotFoundError(f"Unknown event {event_id}")
        return list(self.subscribers[event_id])


class FakeInteraction:
    """Slash-command invocation that records replies."""

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        *,
        workspace_id: str = WORKSPACE,
        channel_id: str = CHANNEL,
        user_id: str = CREATOR,
        attachments: dict[str, bytes] | None = None,
    ):
        self.workspace_id = workspace_id
        self.channel_id = channel_id
        self.user_id = user_id
        self.options = options or {}
        self.attachments = attachments or {}
        self.deferred: bool | None = None
        self.replies: list[tuple[str, bool]] = []
        self.edits: list[str] = []

    def get_string(self, name: str) -> str | None:
        value = self.options.get(name)
        return None if value is None else str(value)

    def get_integer(self, name: str) -> int | None:
        value = self.options.get(name)
        return None if value is None else int(value)

    def get_channel_id(self, name: str) -> str | None:
        return self.get_string(name)

    async def get_attachment_bytes(self, name: str) -> bytes | None:
        return self.attachments.get(name)

    async def defer(self, *, ephemeral: bool = False) -> None:
        self.deferred = ephemeral

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        self.replies.append((content, ephemeral))

    async def edit_reply(self, content: str) -> None:
        self.edits.append(content)

    @property
    def last_edit(self) -> str:
        return self.edits[-1]


class FakeMessage:
    """Chat message for "remind me in" handling."""

    def __init__(
        self,
        content: str,
        *,
        message_id: str = "msg-1",
        reference_message_id: str | None = None,
        workspace_id: str = WORKSPACE,
        channel_id: str = CHANNEL,
        author_id: str = CREATOR,
    ):
        self.content = content
        self.message_id = message_id
        self.reference_message_id = reference_message_id
        self.workspace_id = workspace_id
        self.channel_id = channel_id
        self.author_id = author_id
        self.reactions: list[str] = []
        self.replies: list[str] = []

    async def react(self, emoji: str) -> None:
        self.reactions.append(emoji)

    async def reply(self, content: str) -> None:
        self.replies.append(content)


# =============================================================================
# Item Factories
# =============================================================================


def make_reminder(item_id: int = 1, **overrides: Any) -> ReminderItem:
    fields: dict[str, Any] = {
        "id": item_id,
        "workspace_id": WORKSPACE,
        "channel_id": CHANNEL,
        "creator_id": CREATOR,
        "trigger_at": datetime(2026, 1, 20, 10, 0, tzinfo=UTC),
        "message": "Standup",
    }
    fields.update(overrides)
    return ReminderItem(**fields)


def make_event(
    item_id: int = 1, remote_id: str = "evt-1", **overrides: Any
) -> EventItem:
    fields: dict[str, Any] = {
        "id": item_id,
        "workspace_id": WORKSPACE,
        "channel_id": CHANNEL,
        "creator_id": CREATOR,
        "trigger_at": datetime(2026, 1, 20, 18, 0, tzinfo=UTC),
        "scheduled_event_id": remote_id,
        "event_name": "Game Night",
    }
    fields.update(overrides)
    return EventItem(**fields)


def make_event_reminder(
    item_id: int = 2,
    remote_id: str = "evt-1",
    remind_before: timedelta = timedelta(minutes=30),
    event_start: datetime = datetime(2026, 1, 20, 18, 0, tzinfo=UTC),
    **overrides: Any,
) -> EventReminderItem:
    fields: dict[str, Any] = {
        "id": item_id,
        "workspace_id": WORKSPACE,
        "channel_id": CHANNEL,
        "creator_id": CREATOR,
        "trigger_at": event_start - remind_before,
        "linked_event_id": remote_id,
        "event_name": "Game Night",
        "remind_before_ms": int(remind_before.total_seconds() * 1000),
    }
    fields.update(overrides)
    return EventReminderItem(**fields)


def make_remote_event(
    remote_id: str = "evt-1",
    start: datetime = datetime(2026, 1, 20, 18, 0, tzinfo=UTC),
    **overrides: Any,
) -> RemoteEvent:
    fields: dict[str, Any] = {
        "id": remote_id,
        "workspace_id": WORKSPACE,
        "name": "Game Night",
        "start_time": start,
    }
    fields.update(overrides)
    return RemoteEvent(**fields)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> ItemStore:
    return ItemStore(data_dir)


@pytest.fixture
def client() -> FakePlatformClient:
    return FakePlatformClient()


@pytest.fixture
def synchronizer(store: ItemStore, client: FakePlatformClient) -> EventSynchronizer:
    return EventSynchronizer(store, client)


@pytest.fixture
async def scheduler(store: ItemStore) -> AsyncGenerator[Scheduler, None]:
    # Long interval so only explicit ticks run
    scheduler = Scheduler(store, poll_interval=3600)
    yield scheduler
    await scheduler.stop()


@pytest.fixture
def commands(
    store: ItemStore, synchronizer: EventSynchronizer, scheduler: Scheduler
) -> ScheduleCommands:
    return ScheduleCommands(store, synchronizer, scheduler=scheduler)


@pytest.fixture
def herald_config(data_dir: Path) -> HeraldConfig:
    return HeraldConfig(
        scheduler=SchedulerConfig(data_dir=data_dir, poll_interval=3600)
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 20, 12, 0, tzinfo=UTC)
