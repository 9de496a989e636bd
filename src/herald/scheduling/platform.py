"""Interface to the chat platform consumed by the scheduling engine.

The engine never talks to Discord directly; it goes through PlatformClient,
which the Discord provider implements and tests fake.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Protocol


class PlatformError(Exception):
    """A call to the platform failed."""


class RemoteNotFoundError(PlatformError):
    """The remote object (event, channel) no longer exists."""


class RemotePermissionError(PlatformError):
    """The bot is not allowed to perform the operation."""


class ChannelUnavailableError(PlatformError):
    """The target channel cannot be resolved or does not accept messages."""


class EventLocationType(StrEnum):
    VOICE = "voice"
    STAGE = "stage"
    EXTERNAL = "external"


@dataclass
class AllowedMentions:
    """Recipients a delivery is allowed to ping."""

    users: list[str] = field(default_factory=list)
    everyone: bool = False

    @classmethod
    def none(cls) -> "AllowedMentions":
        return cls()


@dataclass
class RemoteEvent:
    """The platform's current state of a scheduled event."""

    id: str
    workspace_id: str
    name: str
    start_time: datetime
    description: str | None = None
    end_time: datetime | None = None
    cover_image_url: str | None = None
    channel_id: str | None = None
    location: str | None = None
    url: str | None = None
    creator_id: str | None = None


@dataclass
class ScheduledEventSpec:
    """What to create on the platform for a new event."""

    name: str
    start_time: datetime
    location_type: EventLocationType = EventLocationType.VOICE
    description: str | None = None
    channel_id: str | None = None
    location: str | None = None
    end_time: datetime | None = None
    cover_image: bytes | None = None


class PlatformClient(Protocol):
    """Operations the scheduling engine needs from the chat platform."""

    def workspace_ids(self) -> Sequence[str]:
        """Workspaces the bot has joined."""
        ...

    async def send_message(
        self,
        channel_id: str,
        content: str,
        *,
        allowed_mentions: AllowedMentions,
    ) -> None:
        """Deliver a message to a channel.

        Raises:
            ChannelUnavailableError: If the channel cannot be resolved.
            PlatformError: If the delivery is rejected.
        """
        ...

    async def create_scheduled_event(
        self, workspace_id: str, spec: ScheduledEventSpec
    ) -> RemoteEvent: ...

    async def fetch_scheduled_event(
        self, workspace_id: str, event_id: str
    ) -> RemoteEvent:
        """Raises RemoteNotFoundError if the event is gone."""
        ...

    async def delete_scheduled_event(self, workspace_id: str, event_id: str) -> None: ...

    async def fetch_event_subscribers(
        self, workspace_id: str, event_id: str
    ) -> list[str]:
        """Ids of users currently marked as interested in the event."""
        ...
