"""Store implementations."""

from .memory_store import InMemoryStore
from .sqlite_store import SQLiteStore

__all__ = [
    "InMemoryStore",
    "SQLiteStore",
]
