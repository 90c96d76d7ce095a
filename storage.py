"""
storage.py — persistence backends injected into the history and settings stores.

Both stores only need "read a JSON string by key" and "overwrite it", so any
key/value medium works:
  SQLiteBackend  — the real one, delegates to database.py (aiosqlite)
  MemoryBackend  — process-local dict, handy for tests and dry runs
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class StorageBackend(ABC):
    """Key/value medium holding one serialized collection per key."""

    @abstractmethod
    async def load(self, key: str) -> Optional[str]:
        """Return the stored string for key, or None if absent."""
        ...

    @abstractmethod
    async def save(self, key: str, value: str) -> None:
        """Overwrite the stored string for key."""
        ...


class SQLiteBackend(StorageBackend):

    async def load(self, key: str) -> Optional[str]:
        import database as db
        return await db.get_value(key)

    async def save(self, key: str, value: str) -> None:
        import database as db
        await db.set_value(key, value)


class MemoryBackend(StorageBackend):

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def save(self, key: str, value: str) -> None:
        self.data[key] = value
