"""Abstract base class for the schemaless row-store.

Rows are plain JSON-compatible dicts with a string ``id``.  Tables are
created on first use.  Filters are equality matches on top-level fields.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

Row = dict[str, Any]


# Concrete implementations: SQLiteRowStore, MemoryRowStore
# Located in: metrocircuit/providers/store/
class IRowStore(ABC):
    """Contract for Document, Chunk, IngestionState, page-group and QueryLog persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing storage (create files or tables)."""

    @abstractmethod
    async def append(self, table: str, row: Row) -> Row:
        """Insert *row*, assigning an ``id`` when missing, and return the stored row."""

    @abstractmethod
    async def append_many(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert several rows in one operation, preserving order."""

    @abstractmethod
    async def get(self, table: str, row_id: str) -> Row | None:
        """Return the row with *row_id*, or ``None``."""

    @abstractmethod
    async def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Row | None:
        """Shallow-merge *changes* into the row and return it, or ``None`` if absent."""

    @abstractmethod
    async def scan(self, table: str, filters: Mapping[str, Any] | None = None) -> list[Row]:
        """Return rows matching every ``field == value`` filter, in insertion order."""

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> bool:
        """Delete one row by id; return whether it existed."""

    @abstractmethod
    async def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        """Delete every row matching *filters* and return the count.

        An empty filter mapping is rejected so a table is never wiped by accident.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"sqlite"``."""
