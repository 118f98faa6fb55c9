"""SQLite-backed row-store using aiosqlite.

All collections share one ``rows`` table keyed by ``(collection, id)``;
the row body is stored as JSON and filtered with ``json_extract``.  The
autoincrement ``seq`` column preserves insertion order for scans.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from metrocircuit.interfaces.row_store import IRowStore, Row
from metrocircuit.providers.store._filters import check_name

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS rows (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    collection  TEXT    NOT NULL,
    id          TEXT    NOT NULL,
    data        TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE (collection, id)
)
"""

_CREATE_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_rows_collection ON rows(collection, seq)"

_INSERT_SQL = "INSERT INTO rows (collection, id, data) VALUES (?, ?, ?)"

_SELECT_ONE_SQL = "SELECT data FROM rows WHERE collection = ? AND id = ?"

_UPDATE_SQL = """
UPDATE rows SET data = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
WHERE collection = ? AND id = ?
"""

_DELETE_ONE_SQL = "DELETE FROM rows WHERE collection = ? AND id = ?"


class SQLiteRowStore(IRowStore):
    """Persistent row-store in a single SQLite file.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file; parent directories are created.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the database file, table and index."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.execute(_CREATE_INDEX_SQL)
            await db.commit()
        logger.info("row_store_initialized", db_path=str(self._db_path))

    # ------------------------------------------------------------------
    # IRowStore interface
    # ------------------------------------------------------------------

    async def append(self, table: str, row: Row) -> Row:
        return (await self.append_many(table, [row]))[0]

    async def append_many(self, table: str, rows: list[Row]) -> list[Row]:
        check_name(table, "table")
        stored: list[Row] = []
        for row in rows:
            item = dict(row)
            item.setdefault("id", str(uuid.uuid4()))
            stored.append(item)
        if not stored:
            return []
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.executemany(
                _INSERT_SQL,
                [(table, item["id"], json.dumps(item)) for item in stored],
            )
            await db.commit()
        return stored

    async def get(self, table: str, row_id: str) -> Row | None:
        check_name(table, "table")
        async with aiosqlite.connect(str(self._db_path)) as db:
            async with db.execute(_SELECT_ONE_SQL, (table, row_id)) as cursor:
                found = await cursor.fetchone()
        return json.loads(found[0]) if found else None

    async def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Row | None:
        check_name(table, "table")
        async with aiosqlite.connect(str(self._db_path)) as db:
            async with db.execute(_SELECT_ONE_SQL, (table, row_id)) as cursor:
                found = await cursor.fetchone()
            if not found:
                return None
            row = json.loads(found[0])
            row.update(changes)
            row["id"] = row_id
            await db.execute(_UPDATE_SQL, (json.dumps(row), table, row_id))
            await db.commit()
        return row

    async def scan(self, table: str, filters: Mapping[str, Any] | None = None) -> list[Row]:
        check_name(table, "table")
        where, params = self._where(table, filters)
        async with aiosqlite.connect(str(self._db_path)) as db:
            async with db.execute(f"SELECT data FROM rows WHERE {where} ORDER BY seq", params) as cursor:
                found = await cursor.fetchall()
        return [json.loads(r[0]) for r in found]

    async def delete(self, table: str, row_id: str) -> bool:
        check_name(table, "table")
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_ONE_SQL, (table, row_id))
            await db.commit()
            return cursor.rowcount > 0

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        check_name(table, "table")
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        where, params = self._where(table, filters)
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(f"DELETE FROM rows WHERE {where}", params)
            await db.commit()
            return cursor.rowcount

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _where(table: str, filters: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
        clauses = ["collection = ?"]
        params: list[Any] = [table]
        for field, value in (filters or {}).items():
            path = f"$.{check_name(field)}"
            if value is None:
                clauses.append("json_extract(data, ?) IS NULL")
                params.append(path)
            else:
                clauses.append("json_extract(data, ?) = ?")
                params.extend([path, value])
        return " AND ".join(clauses), params
