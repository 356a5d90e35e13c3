from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from database.base import Database

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id TEXT PRIMARY KEY,
    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


@dataclass(frozen=True, slots=True)
class Migration:
    id: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_migrations(directory: Path) -> list[Migration]:
    """SQL files in ``directory``, ordered by their numeric file name prefix."""
    return [Migration(id=path.name, path=path) for path in sorted(directory.glob("*.sql"))]


async def run_migrations(database: Database, migrations_path: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every migration not yet recorded in ``schema_migrations``.

    Returns the ids applied by this call, in order.
    """
    await database.executescript(_LEDGER_DDL)
    done = {row["id"] for row in await database.fetchall("SELECT id FROM schema_migrations;")}

    pending = [migration for migration in discover_migrations(migrations_path) if migration.id not in done]
    for migration in pending:
        LOGGER.info("Applying migration %s", migration.id, extra={"migration": migration.id})
        await database.executescript(migration.read())
        await database.execute("INSERT INTO schema_migrations(id) VALUES (?);", [migration.id])
    return [migration.id for migration in pending]
