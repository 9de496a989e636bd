"""PlatformClient implementation on top of discord.py."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterator, Sequence
from contextlib import contextmanager
from datetime import timedelta
from typing import TypeVar

import discord

from herald.scheduling.platform import (
    AllowedMentions,
    ChannelUnavailableError,
    EventLocationType,
    PlatformError,
    RemoteEvent,
    RemoteNotFoundError,
    RemotePermissionError,
    ScheduledEventSpec,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Discord requires an end time for external events
DEFAULT_EXTERNAL_DURATION = timedelta(hours=1)

_ENTITY_TYPES = {
    EventLocationType.VOICE: discord.EntityType.voice,
    EventLocationType.STAGE: discord.EntityType.stage_instance,
    EventLocationType.EXTERNAL: discord.EntityType.external,
}


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Map discord.py exceptions onto the platform error types."""
    try:
        yield
    except discord.NotFound as e:
        raise RemoteNotFoundError(f"{action}: {e.text or 'not found'}") from e
    except discord.Forbidden as e:
        raise RemotePermissionError(f"{action}: {e.text or 'forbidden'}") from e
    except discord.HTTPException as e:
        raise PlatformError(f"{action}: {e.status} {e.text}") from e


async def _call(action: str, awaitable: Awaitable[T]) -> T:
    with translate_errors(action):
        return await awaitable


def to_remote_event(event: discord.ScheduledEvent) -> RemoteEvent:
    return RemoteEvent(
        id=str(event.id),
        workspace_id=str(event.guild_id),
        name=event.name,
        start_time=event.start_time,
        description=event.description,
        end_time=event.end_time,
        cover_image_url=event.cover_image.url if event.cover_image else None,
        channel_id=str(event.channel_id) if event.channel_id else None,
        location=event.location,
        url=event.url,
        creator_id=str(event.creator_id) if event.creator_id else None,
    )


def to_allowed_mentions(allowed: AllowedMentions) -> discord.AllowedMentions:
    return discord.AllowedMentions(
        everyone=allowed.everyone,
        users=[discord.Object(id=int(user_id)) for user_id in allowed.users],
        roles=False,
        replied_user=False,
    )


class DiscordPlatformClient:
    """Adapts a connected discord.Client to the scheduling engine."""

    def __init__(self, client: discord.Client):
        self._client = client

    def workspace_ids(self) -> Sequence[str]:
        return [str(guild.id) for guild in self._client.guilds]

    async def _guild(self, workspace_id: str) -> discord.Guild:
        guild = self._client.get_guild(int(workspace_id))
        if guild is None:
            guild = await _call("fetch guild", self._client.fetch_guild(int(workspace_id)))
        return guild

    async def send_message(
        self,
        channel_id: str,
        content: str,
        *,
        allowed_mentions: AllowedMentions,
    ) -> None:
        channel = self._client.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self._client.fetch_channel(int(channel_id))
            except (discord.NotFound, discord.Forbidden, discord.InvalidData) as e:
                raise ChannelUnavailableError(f"Channel {channel_id}: {e}") from e
            except discord.HTTPException as e:
                raise PlatformError(f"fetch channel: {e.status} {e.text}") from e
        if not isinstance(channel, discord.abc.Messageable):
            raise ChannelUnavailableError(f"Channel {channel_id} does not accept messages")

        await _call(
            "send message",
            channel.send(content, allowed_mentions=to_allowed_mentions(allowed_mentions)),
        )

    async def create_scheduled_event(
        self, workspace_id: str, spec: ScheduledEventSpec
    ) -> RemoteEvent:
        guild = await self._guild(workspace_id)
        kwargs: dict = {
            "name": spec.name,
            "start_time": spec.start_time,
            "entity_type": _ENTITY_TYPES[spec.location_type],
            "privacy_level": discord.PrivacyLevel.guild_only,
        }
        if spec.description:
            kwargs["description"] = spec.description
        if spec.cover_image:
            kwargs["image"] = spec.cover_image
        if spec.location_type == EventLocationType.EXTERNAL:
            kwargs["location"] = spec.location
            kwargs["end_time"] = spec.end_time or spec.start_time + DEFAULT_EXTERNAL_DURATION
        else:
            kwargs["channel"] = discord.Object(id=int(spec.channel_id or 0))
            if spec.end_time:
                kwargs["end_time"] = spec.end_time

        event = await _call("create event", guild.create_scheduled_event(**kwargs))
        logger.debug(
            "discord_event_created",
            extra={"workspace.id": workspace_id, "event.remote_id": str(event.id)},
        )
        return to_remote_event(event)

    async def fetch_scheduled_event(
        self, workspace_id: str, event_id: str
    ) -> RemoteEvent:
        guild = await self._guild(workspace_id)
        event = await _call("fetch event", guild.fetch_scheduled_event(int(event_id)))
        return to_remote_event(event)

    async def delete_scheduled_event(self, workspace_id: str, event_id: str) -> None:
        guild = await self._guild(workspace_id)
        event = guild.get_scheduled_event(int(event_id))
        if event is None:
            event = await _call(
                "fetch event", guild.fetch_scheduled_event(int(event_id))
            )
        await _call("delete event", event.delete())

    async def fetch_event_subscribers(
        self, workspace_id: str, event_id: str
    ) -> list[str]:
        guild = await self._guild(workspace_id)
        # Always fetch; the cached subscriber count goes stale
        event = await _call("fetch event", guild.fetch_scheduled_event(int(event_id)))
        with translate_errors("fetch subscribers"):
            return [str(user.id) async for user in event.users(limit=None)]
