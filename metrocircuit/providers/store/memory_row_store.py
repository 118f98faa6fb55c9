"""In-memory row-store for tests and throwaway CLI runs.

Rows are deep-copied on the way in and out so callers can never mutate
stored state through a returned dict, matching the SQLite adapter's
serialize-on-write behaviour.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Mapping
from typing import Any

from metrocircuit.interfaces.row_store import IRowStore, Row
from metrocircuit.providers.store._filters import check_name, matches


class MemoryRowStore(IRowStore):
    """Dict-of-dicts row-store preserving insertion order."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Row]] = {}

    async def initialize(self) -> None:
        return None

    async def append(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(dict(row))
        stored.setdefault("id", str(uuid.uuid4()))
        self._table(table)[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def append_many(self, table: str, rows: list[Row]) -> list[Row]:
        return [await self.append(table, row) for row in rows]

    async def get(self, table: str, row_id: str) -> Row | None:
        row = self._table(table).get(row_id)
        return copy.deepcopy(row) if row is not None else None

    async def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Row | None:
        rows = self._table(table)
        if row_id not in rows:
            return None
        rows[row_id].update(copy.deepcopy(dict(changes)))
        rows[row_id]["id"] = row_id
        return copy.deepcopy(rows[row_id])

    async def scan(self, table: str, filters: Mapping[str, Any] | None = None) -> list[Row]:
        for field in filters or {}:
            check_name(field)
        return [copy.deepcopy(r) for r in self._table(table).values() if matches(r, filters)]

    async def delete(self, table: str, row_id: str) -> bool:
        return self._table(table).pop(row_id, None) is not None

    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        rows = self._table(table)
        doomed = [row_id for row_id, row in rows.items() if matches(row, filters)]
        for row_id in doomed:
            del rows[row_id]
        return len(doomed)

    def get_provider_name(self) -> str:
        return "memory"

    def _table(self, table: str) -> dict[str, Row]:
        return self._tables.setdefault(check_name(table, "table"), {})
