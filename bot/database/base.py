from __future__ import annotations

import asyncio
import itertools
import logging
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import aiosqlite
import asyncpg

from core.config import ConfigError
from core.errors import PersistenceError

LOGGER = logging.getLogger(__name__)

Row = dict[str, Any]

_DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    aiosqlite.Error,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)

_PLACEHOLDER = re.compile(r"\?")


@dataclass(slots=True)
class DatabaseDsn:
    driver: str
    value: str


def parse_database_dsn(url: str) -> DatabaseDsn:
    if url.startswith("sqlite:///"):
        return DatabaseDsn(driver="sqlite", value=url.removeprefix("sqlite:///"))
    if url.startswith(("postgresql://", "postgres://")):
        return DatabaseDsn(driver="postgresql", value=url)
    raise ConfigError("Unsupported database URL. Use sqlite:/// or postgresql://")


def qmark_to_numbered(query: str) -> str:
    """Rewrite ``?`` placeholders as ``$1, $2, ...`` for asyncpg."""
    counter = itertools.count(1)
    return _PLACEHOLDER.sub(lambda _: f"${next(counter)}", query)


class _Driver(Protocol):
    async def execute(self, query: str, params: Sequence[Any]) -> None: ...
    async def fetchone(self, query: str, params: Sequence[Any]) -> Row | None: ...
    async def fetchall(self, query: str, params: Sequence[Any]) -> list[Row]: ...
    async def executescript(self, script: str) -> None: ...
    async def close(self) -> None: ...


class _SqliteDriver:
    # One connection shared by every task, so statements are serialized.
    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._connection = connection
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: Path, timeout: int) -> _SqliteDriver:
        path.parent.mkdir(parents=True, exist_ok=True)
        connection = await aiosqlite.connect(path, timeout=timeout)
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA journal_mode = WAL;")
        await connection.commit()
        return cls(connection)

    async def execute(self, query: str, params: Sequence[Any]) -> None:
        async with self._lock:
            await self._connection.execute(query, tuple(params))
            await self._connection.commit()

    async def fetchone(self, query: str, params: Sequence[Any]) -> Row | None:
        async with self._lock:
            cursor = await self._connection.execute(query, tuple(params))
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetchall(self, query: str, params: Sequence[Any]) -> list[Row]:
        async with self._lock:
            cursor = await self._connection.execute(query, tuple(params))
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def executescript(self, script: str) -> None:
        async with self._lock:
            await self._connection.executescript(script)
            await self._connection.commit()

    async def close(self) -> None:
        await self._connection.close()


class _PostgresDriver:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def open(cls, dsn: str, timeout: int, min_size: int, max_size: int) -> _PostgresDriver:
        pool = await asyncpg.create_pool(dsn=dsn, min_size=min_size, max_size=max_size, timeout=timeout)
        return cls(pool)

    async def execute(self, query: str, params: Sequence[Any]) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(qmark_to_numbered(query), *params)

    async def fetchone(self, query: str, params: Sequence[Any]) -> Row | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(qmark_to_numbered(query), *params)
        return dict(row) if row is not None else None

    async def fetchall(self, query: str, params: Sequence[Any]) -> list[Row]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(qmark_to_numbered(query), *params)
        return [dict(row) for row in rows]

    async def executescript(self, script: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(script)

    async def close(self) -> None:
        await self._pool.close()


class Database:
    """Thin async facade over SQLite (aiosqlite) or PostgreSQL (asyncpg).

    Queries are written with ``?`` placeholders; they are rewritten to ``$n`` for
    PostgreSQL. Driver failures surface as :class:`PersistenceError`.
    """

    def __init__(self, url: str, timeout_seconds: int = 30, pool_min_size: int = 2, pool_max_size: int = 10) -> None:
        self._dsn = parse_database_dsn(url)
        self._timeout_seconds = timeout_seconds
        self._pool_min_size = pool_min_size
        self._pool_max_size = pool_max_size
        self._driver: _Driver | None = None

    @property
    def driver(self) -> str:
        return self._dsn.driver

    @property
    def is_connected(self) -> bool:
        return self._driver is not None

    async def connect(self) -> None:
        if self.driver == "sqlite":
            path = Path(self._dsn.value)
            self._driver = await _SqliteDriver.open(path, self._timeout_seconds)
            LOGGER.info("Connected to SQLite: %s", path)
            return
        self._driver = await _PostgresDriver.open(
            self._dsn.value, self._timeout_seconds, self._pool_min_size, self._pool_max_size
        )
        LOGGER.info("Connected to PostgreSQL")

    async def close(self) -> None:
        if self._driver is not None:
            await self._driver.close()
            self._driver = None

    @asynccontextmanager
    async def _session(self, query: str) -> AsyncIterator[_Driver]:
        if self._driver is None:
            raise PersistenceError("Database is not connected")
        try:
            yield self._driver
        except _DRIVER_ERRORS as exc:
            LOGGER.debug("Query failed: %s", " ".join(query.split())[:200])
            raise PersistenceError(f"{type(exc).__name__}: {exc}") from exc

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        async with self._session(query) as driver:
            await driver.execute(query, params or ())

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> Row | None:
        async with self._session(query) as driver:
            return await driver.fetchone(query, params or ())

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[Row]:
        async with self._session(query) as driver:
            return await driver.fetchall(query, params or ())

    async def executescript(self, script: str) -> None:
        async with self._session(script) as driver:
            await driver.executescript(script)

    async def ping(self) -> None:
        await self.fetchone("SELECT 1 AS ok;")
