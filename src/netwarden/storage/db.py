"""SQLite database connection management and schema migrations."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS block_rules (
    rule_name TEXT PRIMARY KEY,
    ip TEXT NOT NULL UNIQUE,
    block_string TEXT NOT NULL,
    connection_detail TEXT NOT NULL DEFAULT '{}',
    timestamp REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS blocking_strings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    value TEXT NOT NULL UNIQUE,
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rules_block_string
    ON block_rules(block_string);
"""


async def get_db(
    db_path: str | Path,
    seed_criteria: Iterable[str] = (),
) -> aiosqlite.Connection:
    """Open (or create) the database and run migrations.

    A freshly created database is seeded with ``seed_criteria``.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")

    await _migrate(db, seed_criteria)
    return db


async def _schema_version(db: aiosqlite.Connection) -> int | None:
    """Stored schema version, or None for a database with no tables yet."""
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if await cursor.fetchone() is None:
        return None
    cursor = await db.execute("SELECT MAX(version) FROM schema_version")
    row = await cursor.fetchone()
    return row[0] or 0


async def _migrate(db: aiosqlite.Connection, seed_criteria: Iterable[str]) -> None:
    current = await _schema_version(db)

    if current is None:
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        # Seeds keep their given order through the autoincrement id
        now = time.time()
        await db.executemany(
            "INSERT OR IGNORE INTO blocking_strings (value, created_at) VALUES (?, ?)",
            [(value, now) for value in seed_criteria if value.strip()],
        )
        await db.commit()
        logger.info("Created ledger database (schema version %d)", SCHEMA_VERSION)
        return

    if current < SCHEMA_VERSION:
        logger.info("Upgrading ledger schema %d -> %d", current, SCHEMA_VERSION)
        # ALTER statements for future versions go here
        await db.executescript(SCHEMA_SQL)
        await db.execute("DELETE FROM schema_version")
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        await db.commit()
