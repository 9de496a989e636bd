"""Wrappers adapting discord.py interactions and messages to command protocols."""

from __future__ import annotations

from typing import Any

import discord


class SlashInteraction:
    """A slash-command invocation with its resolved options."""

    def __init__(self, interaction: discord.Interaction, options: dict[str, Any]):
        self._interaction = interaction
        self._options = {k: v for k, v in options.items() if v is not None}

    @property
    def workspace_id(self) -> str:
        return str(self._interaction.guild_id)

    @property
    def channel_id(self) -> str:
        return str(self._interaction.channel_id)

    @property
    def user_id(self) -> str:
        return str(self._interaction.user.id)

    def get_string(self, name: str) -> str | None:
        value = self._options.get(name)
        return str(value) if value is not None else None

    def get_integer(self, name: str) -> int | None:
        value = self._options.get(name)
        return int(value) if value is not None else None

    def get_channel_id(self, name: str) -> str | None:
        channel = self._options.get(name)
        return str(channel.id) if channel is not None else None

    async def get_attachment_bytes(self, name: str) -> bytes | None:
        attachment: discord.Attachment | None = self._options.get(name)
        if attachment is None:
            return None
        return await attachment.read()

    async def defer(self, *, ephemeral: bool = False) -> None:
        await self._interaction.response.defer(ephemeral=ephemeral, thinking=True)

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        if self._interaction.response.is_done():
            await self._interaction.followup.send(content, ephemeral=ephemeral)
        else:
            await self._interaction.response.send_message(content, ephemeral=ephemeral)

    async def edit_reply(self, content: str) -> None:
        await self._interaction.edit_original_response(
            content=content, allowed_mentions=discord.AllowedMentions.none()
        )


class IncomingMessage:
    """A guild message that may contain a "remind me in" request."""

    def __init__(self, message: discord.Message):
        if message.guild is None:
            raise ValueError("Reminder messages must come from a server channel")
        self._message = message
        self._workspace_id = str(message.guild.id)

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    @property
    def channel_id(self) -> str:
        return str(self._message.channel.id)

    @property
    def message_id(self) -> str:
        return str(self._message.id)

    @property
    def author_id(self) -> str:
        return str(self._message.author.id)

    @property
    def content(self) -> str:
        return self._message.content

    @property
    def reference_message_id(self) -> str | None:
        reference = self._message.reference
        if reference is None or reference.message_id is None:
            return None
        return str(reference.message_id)

    async def react(self, emoji: str) -> None:
        await self._message.add_reaction(emoji)

    async def reply(self, content: str) -> None:
        await self._message.reply(
            content, allowed_mentions=discord.AllowedMentions(replied_user=False)
        )
