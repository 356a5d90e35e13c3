from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from database.base import Database
from database.models import GuildConfig, TicketRecord
from services.cache import CacheBackend

LOGGER = logging.getLogger(__name__)


def _guild_cache_key(guild_id: str) -> str:
    return f"guild:config:{guild_id}"


class GuildRepository:
    """Per-community ticketing configuration, read through the cache backend."""

    def __init__(self, db: Database, cache: CacheBackend | None = None, cache_ttl: int = 120) -> None:
        self.db = db
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def get(self, guild_id: str, *, fresh: bool = False) -> GuildConfig | None:
        """Read a guild's settings. ``fresh`` skips the cache and reads the database."""
        if self.cache is not None and not fresh:
            cached = await self.cache.get(_guild_cache_key(guild_id))
            if cached is not None:
                return GuildConfig(**cached)

        row = await self.db.fetchone("SELECT * FROM guilds WHERE guild_id = ?;", [guild_id])
        if not row:
            return None
        guild = self._row_to_guild(row)
        await self._remember(guild)
        return guild

    async def get_or_default(self, guild_id: str, *, fresh: bool = False) -> GuildConfig:
        guild = await self.get(guild_id, fresh=fresh)
        return guild if guild is not None else GuildConfig(guild_id=guild_id)

    async def save(self, guild: GuildConfig) -> None:
        # Invalidate first so a failed refresh never leaves the previous document behind.
        await self._forget(guild.guild_id)
        await self.db.execute(
            """
            INSERT INTO guilds (
                guild_id, ticketing_enabled, channel_id, role_id, open_message_id,
                open_category_id, claimed_category_id, closed_category_id, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(guild_id) DO UPDATE SET
                ticketing_enabled = excluded.ticketing_enabled,
                channel_id = excluded.channel_id,
                role_id = excluded.role_id,
                open_message_id = excluded.open_message_id,
                open_category_id = excluded.open_category_id,
                claimed_category_id = excluded.claimed_category_id,
                closed_category_id = excluded.closed_category_id,
                updated_at = CURRENT_TIMESTAMP;
            """,
            [
                guild.guild_id,
                guild.ticketing_enabled,
                guild.channel_id,
                guild.role_id,
                guild.open_message_id,
                guild.open_category_id,
                guild.claimed_category_id,
                guild.closed_category_id,
            ],
        )
        await self._remember(guild)

    async def _remember(self, guild: GuildConfig) -> None:
        if self.cache is None:
            return
        if not await self.cache.set(_guild_cache_key(guild.guild_id), asdict(guild), ttl=self.cache_ttl):
            await self._forget(guild.guild_id)

    async def _forget(self, guild_id: str) -> None:
        if self.cache is not None:
            await self.cache.delete(_guild_cache_key(guild_id))

    @staticmethod
    def _row_to_guild(row: dict[str, Any]) -> GuildConfig:
        return GuildConfig(
            guild_id=str(row["guild_id"]),
            ticketing_enabled=bool(row["ticketing_enabled"]),
            channel_id=row["channel_id"] or "",
            role_id=row["role_id"] or "",
            open_message_id=row["open_message_id"] or "",
            open_category_id=row["open_category_id"] or "",
            claimed_category_id=row["claimed_category_id"] or "",
            closed_category_id=row["closed_category_id"] or "",
        )


class TicketRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def save(self, ticket: TicketRecord) -> None:
        """Upsert the full record keyed by (guild_id, channel_id)."""
        await self.db.execute(
            """
            INSERT INTO tickets (
                guild_id, channel_id, ticket_number, user_id, username, setup_message_id,
                claimed_by, closed_by, deleted, created_at, channel_delete_due_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, channel_id) DO UPDATE SET
                setup_message_id = excluded.setup_message_id,
                claimed_by = excluded.claimed_by,
                closed_by = excluded.closed_by,
                deleted = excluded.deleted,
                channel_delete_due_at = excluded.channel_delete_due_at;
            """,
            [
                ticket.guild_id,
                ticket.channel_id,
                ticket.ticket_number,
                ticket.user_id,
                ticket.username,
                ticket.setup_message_id,
                ticket.claimed_by,
                ticket.closed_by,
                ticket.deleted,
                ticket.created_at,
                ticket.channel_delete_due_at,
            ],
        )

    async def get_by_channel(self, guild_id: str, channel_id: str) -> TicketRecord | None:
        row = await self.db.fetchone(
            """
            SELECT * FROM tickets
            WHERE guild_id = ? AND channel_id = ? AND deleted = ?;
            """,
            [guild_id, channel_id, False],
        )
        if not row:
            return None
        return self._row_to_ticket(row)

    async def latest_ticket_number(self, guild_id: str) -> int:
        # Deleted tickets still count so numbers are never handed out twice.
        row = await self.db.fetchone(
            "SELECT MAX(ticket_number) AS latest FROM tickets WHERE guild_id = ?;",
            [guild_id],
        )
        if not row or row["latest"] is None:
            return 0
        return int(row["latest"])

    async def list_pending_channel_removals(self) -> list[TicketRecord]:
        rows = await self.db.fetchall(
            """
            SELECT * FROM tickets
            WHERE deleted = ? AND channel_delete_due_at IS NOT NULL
            ORDER BY channel_delete_due_at ASC;
            """,
            [True],
        )
        return [self._row_to_ticket(row) for row in rows]

    @staticmethod
    def _row_to_ticket(row: dict[str, Any]) -> TicketRecord:
        return TicketRecord(
            ticket_number=int(row["ticket_number"]),
            guild_id=str(row["guild_id"]),
            channel_id=str(row["channel_id"]),
            user_id=str(row["user_id"]),
            username=row["username"],
            created_at=row["created_at"],
            setup_message_id=row["setup_message_id"] or "",
            claimed_by=row["claimed_by"] or "",
            closed_by=row["closed_by"] or "",
            deleted=bool(row["deleted"]),
            channel_delete_due_at=row["channel_delete_due_at"],
        )
