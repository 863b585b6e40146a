"""Repository classes for the rule ledger and blocking criteria."""

from __future__ import annotations

import json
import time

import aiosqlite

from netwarden.engine.models import BlockRule


def _row_to_rule(row: aiosqlite.Row) -> BlockRule:
    return BlockRule(
        ip=row["ip"],
        rule_name=row["rule_name"],
        block_string=row["block_string"],
        connection_detail=json.loads(row["connection_detail"] or "{}"),
        timestamp=row["timestamp"],
    )


class RuleRepo:
    """Ledger of installed block rules. One row per IP."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def add(self, rule: BlockRule) -> None:
        # Replaces a stale entry for the same rule left behind when the
        # firewall rule was removed outside netwarden.
        await self._db.execute(
            "INSERT OR REPLACE INTO block_rules "
            "(rule_name, ip, block_string, connection_detail, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                rule.rule_name,
                rule.ip,
                rule.block_string,
                json.dumps(rule.connection_detail, default=str),
                rule.timestamp,
            ),
        )
        await self._db.commit()

    async def remove(self, rule_name: str) -> int:
        """Delete by rule name. Returns the number of rows removed."""
        cursor = await self._db.execute(
            "DELETE FROM block_rules WHERE rule_name = ?", (rule_name,)
        )
        await self._db.commit()
        return cursor.rowcount

    async def get(self, rule_name: str) -> BlockRule | None:
        cursor = await self._db.execute(
            "SELECT * FROM block_rules WHERE rule_name = ?", (rule_name,)
        )
        row = await cursor.fetchone()
        return _row_to_rule(row) if row else None

    async def list_all(self) -> list[BlockRule]:
        cursor = await self._db.execute(
            "SELECT * FROM block_rules ORDER BY timestamp"
        )
        return [_row_to_rule(row) async for row in cursor]

    async def list_by_block_string(self, block_string: str) -> list[BlockRule]:
        cursor = await self._db.execute(
            "SELECT * FROM block_rules WHERE block_string = ? ORDER BY timestamp",
            (block_string,),
        )
        return [_row_to_rule(row) async for row in cursor]


class CriteriaRepo:
    """The operator's blocking strings."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def list_all(self) -> list[str]:
        cursor = await self._db.execute(
            "SELECT value FROM blocking_strings ORDER BY id"
        )
        return [row["value"] async for row in cursor]

    async def add(self, value: str) -> bool:
        """Insert a criterion. False if it already exists."""
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO blocking_strings (value, created_at) VALUES (?, ?)",
            (value, time.time()),
        )
        await self._db.commit()
        return cursor.rowcount == 1

    async def remove(self, value: str) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM blocking_strings WHERE value = ?", (value,)
        )
        await self._db.commit()
        return cursor.rowcount > 0
