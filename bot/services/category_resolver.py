from __future__ import annotations

import logging
from enum import StrEnum

from core.context import AppContext
from core.errors import RemoteNotFoundError
from database.models import GuildConfig
from services.platform import staff_visibility

LOGGER = logging.getLogger(__name__)


class CategoryStage(StrEnum):
    OPEN = "open"
    CLAIMED = "claimed"
    CLOSED = "closed"

    @property
    def guild_field(self) -> str:
        return f"{self.value}_category_id"


def guild_lock_key(guild_id: str) -> str:
    return f"guild:{guild_id}"


class CategoryResolver:
    """Finds the channel category for a lifecycle stage, recreating it when it was deleted.

    The stored category id is authoritative until the platform reports it
    missing. A fresh category only ever replaces a missing one, so an outage
    on the platform side never spawns duplicates. Resolution is serialized per
    guild and starts from the stored configuration, not the caller's copy.
    """

    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    def display_name(self, stage: CategoryStage) -> str:
        tickets = self.ctx.config.tickets
        return {
            CategoryStage.OPEN: tickets.open_category_name,
            CategoryStage.CLAIMED: tickets.claimed_category_name,
            CategoryStage.CLOSED: tickets.closed_category_name,
        }[stage]

    async def resolve(self, guild: GuildConfig, stage: CategoryStage, creator_id: str) -> str:
        async with self.ctx.locks.hold(guild_lock_key(guild.guild_id)):
            stored = await self.ctx.guild_repo.get(guild.guild_id, fresh=True) or guild
            current = getattr(stored, stage.guild_field)
            if current:
                try:
                    channel = await self.ctx.platform.fetch_channel(current)
                except RemoteNotFoundError:
                    LOGGER.warning(
                        "Ticket category is gone, creating a new one. guild=%s stage=%s category=%s",
                        guild.guild_id,
                        stage,
                        current,
                    )
                else:
                    if channel.id != current:
                        await self._remember(stored, stage, channel.id)
                    setattr(guild, stage.guild_field, channel.id)
                    return channel.id

            created = await self.ctx.platform.create_category(
                guild.guild_id,
                self.display_name(stage),
                staff_visibility(guild.guild_id, stored.role_id, creator_id),
            )
            await self._remember(stored, stage, created.id)
            setattr(guild, stage.guild_field, created.id)
            LOGGER.info(
                "Created ticket category. guild=%s stage=%s category=%s",
                guild.guild_id,
                stage,
                created.id,
            )
            return created.id

    async def _remember(self, guild: GuildConfig, stage: CategoryStage, category_id: str) -> None:
        setattr(guild, stage.guild_field, category_id)
        await self.ctx.guild_repo.save(guild)
