from __future__ import annotations

from pathlib import Path

import pytest

from core.config import ConfigError
from core.errors import PersistenceError
from database.base import Database, parse_database_dsn, qmark_to_numbered
from database.migrations.runner import MIGRATIONS_DIR, run_migrations
from database.models import GuildConfig, TicketRecord
from database.repositories import GuildRepository, TicketRepository
from services.cache import MemoryCache


def _ticket(number: int, channel_id: str, **overrides: object) -> TicketRecord:
    values: dict[str, object] = {
        "ticket_number": number,
        "guild_id": "100",
        "channel_id": channel_id,
        "user_id": "1",
        "username": "alice",
        "created_at": "2024-01-31T09:15:00Z",
    }
    values.update(overrides)
    return TicketRecord(**values)  # type: ignore[arg-type]


def test_parse_database_dsn() -> None:
    assert parse_database_dsn("sqlite:///./data/t.db").driver == "sqlite"
    assert parse_database_dsn("postgresql://u:p@localhost/db").driver == "postgresql"
    with pytest.raises(ConfigError):
        parse_database_dsn("mysql://localhost/db")


def test_qmark_to_numbered() -> None:
    assert qmark_to_numbered("SELECT * FROM t WHERE a = ? AND b = ?;") == "SELECT * FROM t WHERE a = $1 AND b = $2;"


@pytest.mark.asyncio
async def test_migrations_are_applied_once(tmp_path: Path) -> None:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()

    first = await run_migrations(db, MIGRATIONS_DIR)
    second = await run_migrations(db, MIGRATIONS_DIR)

    assert first == ["001_initial.sql"]
    assert second == []
    await db.close()


@pytest.mark.asyncio
async def test_queries_fail_with_persistence_error_when_disconnected(tmp_path: Path) -> None:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")

    with pytest.raises(PersistenceError):
        await db.ping()


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors(database: Database) -> None:
    with pytest.raises(PersistenceError):
        await database.execute("INSERT INTO no_such_table VALUES (?);", [1])


@pytest.mark.asyncio
async def test_guild_round_trip_through_cache(database: Database) -> None:
    cache = MemoryCache()
    repo = GuildRepository(database, cache)

    assert await repo.get("100") is None
    default = await repo.get_or_default("100")
    assert default == GuildConfig(guild_id="100")

    await repo.save(GuildConfig(guild_id="100", ticketing_enabled=True, channel_id="5", role_id="6"))
    cached = await repo.get("100")
    uncached = await GuildRepository(database).get("100")

    assert cached == uncached
    assert uncached is not None
    assert uncached.is_ticketing_ready
    assert await cache.get("guild:config:100") is not None


@pytest.mark.asyncio
async def test_ticket_upsert_and_active_lookup(database: Database) -> None:
    repo = TicketRepository(database)
    ticket = _ticket(1, "900")

    await repo.save(ticket)
    ticket.claimed_by = "2"
    await repo.save(ticket)

    loaded = await repo.get_by_channel("100", "900")
    assert loaded == ticket
    assert loaded is not None and loaded.name == "1-alice"

    ticket.deleted = True
    await repo.save(ticket)
    assert await repo.get_by_channel("100", "900") is None


@pytest.mark.asyncio
async def test_latest_ticket_number_counts_deleted_tickets(database: Database) -> None:
    repo = TicketRepository(database)
    assert await repo.latest_ticket_number("100") == 0

    await repo.save(_ticket(1, "900"))
    await repo.save(_ticket(2, "901", deleted=True))
    await repo.save(_ticket(7, "902", guild_id="200"))

    assert await repo.latest_ticket_number("100") == 2
    assert await repo.latest_ticket_number("200") == 7


@pytest.mark.asyncio
async def test_pending_channel_removals(database: Database) -> None:
    repo = TicketRepository(database)
    await repo.save(_ticket(1, "900", deleted=True, channel_delete_due_at="2024-02-01T00:00:00Z"))
    await repo.save(_ticket(2, "901", deleted=True))
    await repo.save(_ticket(3, "902"))

    pending = await repo.list_pending_channel_removals()

    assert [ticket.channel_id for ticket in pending] == ["900"]
    assert pending[0].channel_delete_due_at == "2024-02-01T00:00:00Z"
