"""Tests for the in-memory and sqlite-backed shared memory."""
from __future__ import annotations

import pytest

from bothive.core.shared_memory import (
    InMemorySharedMemory,
    PersistentSharedMemory,
    create_shared_memory,
)
from bothive.storage.database import Database


@pytest.mark.anyio
async def test_in_memory_basic_operations() -> None:
    memory = InMemorySharedMemory("run")

    await memory.set("a", 1)
    assert await memory.get("a") == 1
    assert await memory.has("a")
    assert await memory.get("missing") is None
    assert await memory.delete("a")
    assert not await memory.delete("a")


@pytest.mark.anyio
async def test_append_semantics() -> None:
    memory = InMemorySharedMemory()

    await memory.append("bus", "first")
    await memory.append("bus", "second")
    await memory.set("scalar", "x")
    await memory.append("scalar", "y")

    assert await memory.get("bus") == ["first", "second"]
    assert await memory.get("scalar") == ["x", "y"]


@pytest.mark.anyio
async def test_keys_values_and_clear() -> None:
    memory = InMemorySharedMemory()
    await memory.set("a", 1)
    await memory.set("b", 2)

    assert await memory.keys() == ["a", "b"]
    assert await memory.values() == [1, 2]
    await memory.clear()
    assert await memory.entries() == []


@pytest.mark.anyio
async def test_persistent_values_survive_a_new_instance(database) -> None:
    first = PersistentSharedMemory("job-1", database)
    await first.set("bus", [{"sender": "a", "content": "hi"}])
    await first.append("bus", {"sender": "b", "content": "yo"})

    second = PersistentSharedMemory("job-1", database)
    assert await second.get("bus") == [
        {"sender": "a", "content": "hi"},
        {"sender": "b", "content": "yo"},
    ]
    assert await second.has("bus")


@pytest.mark.anyio
async def test_persistent_reads_are_cached_per_instance(database) -> None:
    reader = PersistentSharedMemory("job-1", database)
    writer = PersistentSharedMemory("job-1", database)
    await writer.set("k", "old")
    assert await reader.get("k") == "old"

    await writer.set("k", "new")

    assert await reader.get("k") == "old"
    assert await PersistentSharedMemory("job-1", database).get("k") == "new"


@pytest.mark.anyio
async def test_persistent_namespaces_are_isolated(database) -> None:
    one = PersistentSharedMemory("job-1", database)
    two = PersistentSharedMemory("job-2", database)
    await one.set("k", "one")
    await two.set("k", "two")

    await one.clear()

    assert await PersistentSharedMemory("job-1", database).get("k") is None
    assert await PersistentSharedMemory("job-2", database).get("k") == "two"
    assert await two.keys() == ["k"]


@pytest.mark.anyio
async def test_persistent_delete(database) -> None:
    memory = PersistentSharedMemory("ns", database)
    await memory.set("k", {"v": 1})

    assert await memory.delete("k")
    assert not await PersistentSharedMemory("ns", database).has("k")


@pytest.mark.anyio
async def test_missing_table_degrades_without_raising(tmp_path, caplog) -> None:
    db = Database(tmp_path / "bare.db", create_schema=False)
    memory = PersistentSharedMemory("ns", db)
    try:
        assert await memory.get("k") is None
        assert not await memory.has("k")
        await memory.set("k", 1)
        assert await memory.get("k") == 1
        assert await memory.entries() == [("k", 1)]
        assert "Shared memory table not found" in caplog.text
    finally:
        db.close()


def test_factory_picks_backend(database) -> None:
    assert isinstance(create_shared_memory("x"), InMemorySharedMemory)
    assert isinstance(create_shared_memory("x", database), PersistentSharedMemory)
