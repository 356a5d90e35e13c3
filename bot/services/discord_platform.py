from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import discord

from core.dispatch import ApplicationCommandEvent, ComponentEvent, InboundEvent, UnknownEvent
from core.errors import RemoteNotFoundError, UpstreamError
from services.platform import (
    Actor,
    ChannelKind,
    OutboundMessage,
    OverwriteTarget,
    PermissionRule,
    RemoteChannel,
    RemoteMessage,
)
from utils.embeds import render_embed
from views.render import read_buttons, render_view

_SUBCOMMAND_OPTION_TYPE = 1


@contextmanager
def _remote_call(action: str, target: str) -> Iterator[None]:
    try:
        yield
    except discord.NotFound as exc:
        raise RemoteNotFoundError(f"{action} {target}: not found") from exc
    except discord.HTTPException as exc:
        raise UpstreamError(f"{action} {target} failed: HTTP {exc.status} {exc.text}") from exc


def _snowflake(value: str) -> int:
    if not value or not value.isdigit():
        raise RemoteNotFoundError(f"Invalid Discord id {value!r}")
    return int(value)


def _describe_channel(channel: Any) -> RemoteChannel:
    if isinstance(channel, discord.TextChannel):
        kind = ChannelKind.TEXT
    elif isinstance(channel, discord.CategoryChannel):
        kind = ChannelKind.CATEGORY
    else:
        kind = ChannelKind.OTHER
    category_id = getattr(channel, "category_id", None)
    return RemoteChannel(
        id=str(channel.id),
        name=getattr(channel, "name", "") or "",
        kind=kind,
        parent_id=str(category_id) if category_id else "",
        topic=getattr(channel, "topic", "") or "",
    )


def _message_kwargs(message: OutboundMessage) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if message.content:
        kwargs["content"] = message.content
    if message.embed is not None:
        kwargs["embed"] = render_embed(message.embed)
    if message.buttons:
        kwargs["view"] = render_view(message.buttons)
    return kwargs


def _overwrite(allow: bool) -> discord.PermissionOverwrite:
    if not allow:
        return discord.PermissionOverwrite.from_pair(discord.Permissions.none(), discord.Permissions.all())
    permissions = discord.Permissions.text()
    permissions.view_channel = True
    permissions.mention_everyone = False
    return discord.PermissionOverwrite.from_pair(permissions, discord.Permissions.none())


class DiscordPlatform:
    """discord.py implementation of :class:`services.platform.Platform`."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    def is_ready(self) -> bool:
        return self.client.is_ready()

    async def _guild(self, guild_id: str) -> discord.Guild:
        guild = self.client.get_guild(_snowflake(guild_id))
        if guild is not None:
            return guild
        with _remote_call("fetch guild", guild_id):
            return await self.client.fetch_guild(_snowflake(guild_id))

    async def _channel(self, channel_id: str) -> Any:
        channel = self.client.get_channel(_snowflake(channel_id))
        if channel is not None:
            return channel
        with _remote_call("fetch channel", channel_id):
            return await self.client.fetch_channel(_snowflake(channel_id))

    def _overwrites(
        self, guild: discord.Guild, rules: list[PermissionRule]
    ) -> dict[Any, discord.PermissionOverwrite]:
        overwrites: dict[Any, discord.PermissionOverwrite] = {}
        for rule in rules:
            target_id = _snowflake(rule.target_id)
            if rule.target is OverwriteTarget.ROLE:
                target = guild.get_role(target_id) or discord.Object(id=target_id, type=discord.Role)
            else:
                target = guild.get_member(target_id) or discord.Object(id=target_id, type=discord.Member)
            overwrites[target] = _overwrite(rule.allow)
        if guild.me is not None:
            overwrites[guild.me] = discord.PermissionOverwrite(
                view_channel=True,
                send_messages=True,
                read_message_history=True,
                manage_channels=True,
                manage_messages=True,
            )
        return overwrites

    async def fetch_channel(self, channel_id: str) -> RemoteChannel:
        with _remote_call("fetch channel", channel_id):
            channel = await self.client.fetch_channel(_snowflake(channel_id))
        return _describe_channel(channel)

    async def create_category(self, guild_id: str, name: str, rules: list[PermissionRule]) -> RemoteChannel:
        guild = await self._guild(guild_id)
        with _remote_call("create category", name):
            category = await guild.create_category(name, overwrites=self._overwrites(guild, rules))
        return _describe_channel(category)

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        *,
        parent_id: str,
        topic: str,
        rules: list[PermissionRule],
    ) -> RemoteChannel:
        guild = await self._guild(guild_id)
        parent = guild.get_channel(_snowflake(parent_id)) or discord.Object(id=_snowflake(parent_id))
        with _remote_call("create channel", name):
            channel = await guild.create_text_channel(
                name,
                category=parent,  # type: ignore[arg-type]
                topic=topic,
                overwrites=self._overwrites(guild, rules),
            )
        return _describe_channel(channel)

    async def edit_channel(
        self,
        channel_id: str,
        *,
        name: str | None = None,
        parent_id: str | None = None,
        topic: str | None = None,
    ) -> None:
        channel = await self._channel(channel_id)
        options: dict[str, Any] = {}
        if name is not None:
            options["name"] = name
        if topic is not None:
            options["topic"] = topic
        if parent_id is not None:
            options["category"] = channel.guild.get_channel(_snowflake(parent_id)) or discord.Object(
                id=_snowflake(parent_id)
            )
        with _remote_call("edit channel", channel_id):
            await channel.edit(**options)

    async def delete_channel(self, channel_id: str) -> None:
        channel = await self._channel(channel_id)
        with _remote_call("delete channel", channel_id):
            await channel.delete()

    async def send_message(self, channel_id: str, message: OutboundMessage) -> RemoteMessage:
        channel = await self._channel(channel_id)
        with _remote_call("send message", channel_id):
            sent = await channel.send(**_message_kwargs(message))
        return RemoteMessage(id=str(sent.id), channel_id=channel_id, content=sent.content or "")

    async def fetch_message(self, channel_id: str, message_id: str) -> RemoteMessage:
        channel = await self._channel(channel_id)
        with _remote_call("fetch message", message_id):
            found = await channel.fetch_message(_snowflake(message_id))
        return RemoteMessage(
            id=str(found.id),
            channel_id=channel_id,
            content=found.content or "",
            buttons=read_buttons(found),
        )

    async def edit_message(self, channel_id: str, message_id: str, message: OutboundMessage) -> None:
        channel = await self._channel(channel_id)
        with _remote_call("edit message", message_id):
            await channel.get_partial_message(_snowflake(message_id)).edit(**_message_kwargs(message))

    async def pin_message(self, channel_id: str, message_id: str) -> None:
        channel = await self._channel(channel_id)
        with _remote_call("pin message", message_id):
            await channel.get_partial_message(_snowflake(message_id)).pin()


class DiscordResponder:
    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    @property
    def is_done(self) -> bool:
        return self.interaction.response.is_done()

    async def reply(self, message: OutboundMessage) -> None:
        kwargs = _message_kwargs(message)
        with _remote_call("reply to interaction", str(self.interaction.id)):
            if self.interaction.response.is_done():
                await self.interaction.followup.send(ephemeral=message.ephemeral, **kwargs)
            else:
                await self.interaction.response.send_message(ephemeral=message.ephemeral, **kwargs)


def _actor(interaction: discord.Interaction) -> Actor:
    user = interaction.user
    role_ids: frozenset[str] = frozenset()
    if isinstance(user, discord.Member):
        role_ids = frozenset(str(role.id) for role in user.roles)
    return Actor(
        user_id=str(user.id),
        username=user.name,
        role_ids=role_ids,
        is_admin=bool(interaction.permissions.administrator),
    )


def decode_interaction(interaction: discord.Interaction) -> InboundEvent:
    """Turn a raw interaction into one of the dispatcher's event variants."""
    responder = DiscordResponder(interaction)
    guild_id = str(interaction.guild_id) if interaction.guild_id else ""
    channel_id = str(interaction.channel_id) if interaction.channel_id else ""
    data: dict[str, Any] = dict(interaction.data or {})

    if interaction.type is discord.InteractionType.application_command:
        subcommand_name = ""
        options: dict[str, str] = {}
        for option in data.get("options", []):
            if option.get("type") == _SUBCOMMAND_OPTION_TYPE:
                subcommand_name = option["name"]
                nested = option.get("options", [])
            else:
                nested = [option]
            for value in nested:
                if "value" in value:
                    options[value["name"]] = str(value["value"])
        return ApplicationCommandEvent(
            command_name=str(data.get("name", "")),
            subcommand_name=subcommand_name,
            actor=_actor(interaction),
            guild_id=guild_id,
            channel_id=channel_id,
            responder=responder,
            options=options,
        )

    if interaction.type is discord.InteractionType.component:
        return ComponentEvent(
            custom_id=str(data.get("custom_id", "")),
            actor=_actor(interaction),
            guild_id=guild_id,
            channel_id=channel_id,
            responder=responder,
        )

    return UnknownEvent(
        kind=getattr(interaction.type, "name", str(interaction.type)),
        responder=responder,
        guild_id=guild_id,
        channel_id=channel_id,
    )
