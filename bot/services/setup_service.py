from __future__ import annotations

import logging

from core.context import AppContext
from core.errors import PermissionDeniedError, RemoteNotFoundError, ValidationError
from database.models import GuildConfig
from services.category_resolver import guild_lock_key
from services.platform import Actor, ChannelKind
from views.ticket_panel import intake_message

LOGGER = logging.getLogger(__name__)


class SetupService:
    """Per-guild ticketing switch, driven by the ``/setup`` command."""

    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    @staticmethod
    def require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError("You must be an administrator to use this command")

    async def enable_ticketing(self, guild_id: str, actor: Actor, channel_id: str, role_id: str) -> GuildConfig:
        self.require_admin(actor)
        if not channel_id or not role_id:
            raise ValidationError("You must provide a channel and a role for ticketing.")
        channel = await self.ctx.platform.fetch_channel(channel_id)
        if channel.kind != ChannelKind.TEXT:
            raise ValidationError("You must provide a text channel for ticketing.")

        async with self.ctx.locks.hold(guild_lock_key(guild_id)):
            guild = await self.ctx.guild_repo.get_or_default(guild_id, fresh=True)
            guild.ticketing_enabled = True
            guild.channel_id = channel.id
            guild.role_id = role_id

            if guild.open_message_id:
                try:
                    await self.ctx.platform.fetch_message(channel.id, guild.open_message_id)
                except RemoteNotFoundError:
                    LOGGER.info(
                        "Intake message is gone, posting a new one. guild=%s channel=%s message=%s",
                        guild_id,
                        channel.id,
                        guild.open_message_id,
                    )
                    guild.open_message_id = ""

            if not guild.open_message_id:
                message = await self.ctx.platform.send_message(channel.id, intake_message())
                guild.open_message_id = message.id

            await self.ctx.guild_repo.save(guild)

        LOGGER.info(
            "Ticketing enabled. guild=%s channel=%s role=%s admin=%s",
            guild_id,
            channel.id,
            role_id,
            actor.user_id,
        )
        return guild

    async def disable_ticketing(self, guild_id: str, actor: Actor) -> GuildConfig:
        self.require_admin(actor)
        async with self.ctx.locks.hold(guild_lock_key(guild_id)):
            guild = await self.ctx.guild_repo.get_or_default(guild_id, fresh=True)
            guild.ticketing_enabled = False
            await self.ctx.guild_repo.save(guild)
        LOGGER.info("Ticketing disabled. guild=%s admin=%s", guild_id, actor.user_id)
        return guild
