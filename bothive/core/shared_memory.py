"""Namespaced async key/value store shared by a run's instructions and tools.

Isolation is by namespace (one per run or job id); there is no locking
inside a namespace. ``append`` is a read-modify-write and two writers racing
on the same key can lose an element: last write wins.
"""
from __future__ import annotations

import abc
import json
import logging
import sqlite3
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from bothive.storage.database import Database

logger = logging.getLogger(__name__)


def _appended(existing: Any, value: Any) -> List[Any]:
    if existing is None:
        return [value]
    if isinstance(existing, list):
        return [*existing, value]
    return [existing, value]


class SharedMemory(abc.ABC):
    """Async key/value contract scoped to one namespace."""

    def __init__(self, namespace: str = "default") -> None:
        self.namespace = namespace

    @abc.abstractmethod
    async def get(self, key: str) -> Any:
        """Return the value for ``key`` or None."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abc.abstractmethod
    async def has(self, key: str) -> bool:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it existed."""

    @abc.abstractmethod
    async def clear(self) -> None:
        ...

    @abc.abstractmethod
    async def entries(self) -> List[Tuple[str, Any]]:
        ...

    async def append(self, key: str, value: Any) -> None:
        """Push onto a list value, wrapping a scalar as ``[existing, value]``."""
        existing = await self.get(key)
        await self.set(key, _appended(existing, value))

    async def keys(self) -> List[str]:
        return [key for key, _ in await self.entries()]

    async def values(self) -> List[Any]:
        return [value for _, value in await self.entries()]


class InMemorySharedMemory(SharedMemory):
    """Ephemeral backend for on-demand runs and tests."""

    def __init__(self, namespace: str = "default") -> None:
        super().__init__(namespace)
        self.data: Dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    async def has(self, key: str) -> bool:
        return key in self.data

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, _MISSING) is not _MISSING

    async def clear(self) -> None:
        self.data.clear()

    async def entries(self) -> List[Tuple[str, Any]]:
        return list(self.data.items())


_MISSING = object()


def _missing_table(exc: sqlite3.OperationalError) -> bool:
    return "no such table" in str(exc)


class PersistentSharedMemory(SharedMemory):
    """
    Durable backend over the ``shared_memory`` table.

    Values are JSON-encoded and cached locally after the first read. The cache
    is never invalidated: a second instance on the same namespace (a job
    redelivered to another process, say) keeps serving the values it already
    read even after they are overwritten elsewhere. ``append`` is likewise a
    read-modify-write with no cross-instance locking, so concurrent appends from
    two instances can drop an entry.

    When the table has not been migrated the store degrades instead of raising:
    reads return None/empty, writes only reach the local cache, and each
    incident is logged.
    """

    def __init__(self, namespace: str, database: Database) -> None:
        super().__init__(namespace)
        self._db = database
        self._cache: Dict[str, Any] = {}

    def _select(self, key: str) -> Optional[str]:
        row = self._db.fetchone(
            "SELECT value FROM shared_memory WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        )
        return row["value"] if row else None

    def _upsert(self, key: str, encoded: str) -> None:
        self._db.execute(
            """
            INSERT INTO shared_memory (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (self.namespace, key, encoded, time.time()),
        )

    def _remove(self, key: Optional[str]) -> int:
        if key is None:
            cursor = self._db.execute(
                "DELETE FROM shared_memory WHERE namespace = ?", (self.namespace,)
            )
        else:
            cursor = self._db.execute(
                "DELETE FROM shared_memory WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            )
        return cursor.rowcount

    def _select_all(self) -> List[Tuple[str, str]]:
        rows = self._db.fetchall(
            "SELECT key, value FROM shared_memory WHERE namespace = ? ORDER BY rowid",
            (self.namespace,),
        )
        return [(row["key"], row["value"]) for row in rows]

    def _warn(self, operation: str, exc: sqlite3.OperationalError) -> None:
        if _missing_table(exc):
            logger.warning(
                "Shared memory table not found (%s on namespace %s); run the schema migration",
                operation,
                self.namespace,
            )
        else:
            logger.error("Shared memory %s failed on namespace %s: %s", operation, self.namespace, exc)

    async def get(self, key: str) -> Any:
        if key in self._cache:
            return self._cache[key]
        try:
            encoded = await self._db.run(self._select, key)
        except sqlite3.OperationalError as exc:
            self._warn("get", exc)
            return None
        if encoded is None:
            return None
        value = json.loads(encoded)
        self._cache[key] = value
        return value

    async def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, default=str)
        self._cache[key] = value
        try:
            await self._db.run(self._upsert, key, encoded)
        except sqlite3.OperationalError as exc:
            self._warn("set", exc)

    async def has(self, key: str) -> bool:
        if key in self._cache:
            return True
        try:
            return await self._db.run(self._select, key) is not None
        except sqlite3.OperationalError as exc:
            self._warn("has", exc)
            return False

    async def delete(self, key: str) -> bool:
        existed = self._cache.pop(key, _MISSING) is not _MISSING
        try:
            removed = await self._db.run(self._remove, key)
        except sqlite3.OperationalError as exc:
            self._warn("delete", exc)
            return existed
        return existed or removed > 0

    async def clear(self) -> None:
        self._cache.clear()
        try:
            await self._db.run(self._remove, None)
        except sqlite3.OperationalError as exc:
            self._warn("clear", exc)

    async def entries(self) -> List[Tuple[str, Any]]:
        try:
            rows = await self._db.run(self._select_all)
        except sqlite3.OperationalError as exc:
            self._warn("entries", exc)
            return list(self._cache.items())
        merged = {key: json.loads(encoded) for key, encoded in rows}
        merged.update(self._cache)
        return list(merged.items())


def create_shared_memory(namespace: str = "default", database: Optional[Database] = None) -> SharedMemory:
    """Durable memory when a database is given, otherwise an in-memory map."""
    if database is None:
        return InMemorySharedMemory(namespace)
    return PersistentSharedMemory(namespace, database)
