"""Row-store adapters."""

from metrocircuit.providers.store.memory_row_store import MemoryRowStore
from metrocircuit.providers.store.sqlite_row_store import SQLiteRowStore

__all__ = ["MemoryRowStore", "SQLiteRowStore"]
