"""Shared fixtures: throwaway stores on tmp_path and an in-memory remote."""

import asyncio
from datetime import datetime

import pytest
import pytest_asyncio

from backend.config import Settings
from backend.database import create_engine, create_sessionmaker, create_tables
from backend.storage.kv import JsonFileKeyValueStore, SqlKeyValueStore, StoreUnavailableError
from backend.storage.progress_store import ProgressStore

NOW = datetime(2026, 3, 14, 9, 30, 0)


class FakeOwnerStore:
    """In-memory remote store that can be made slow or unreachable."""

    def __init__(self, delay: float = 0.0, fail: bool = False) -> None:
        self.rows: dict[str, str] = {}
        self.delay = delay
        self.fail = fail
        self.writes: list[str] = []

    async def get(self, owner_id: str) -> str | None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise StoreUnavailableError("remote offline")
        return self.rows.get(owner_id)

    async def upsert(self, owner_id: str, value: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise StoreUnavailableError("remote offline")
        self.rows[owner_id] = value
        self.writes.append(owner_id)


class BrokenKeyValueStore:
    """A durable store that is never available."""

    async def get(self, key: str) -> str | None:
        raise StoreUnavailableError("durable store unavailable")

    async def put(self, key: str, value: str) -> None:
        raise StoreUnavailableError("durable store unavailable")

    async def delete(self, key: str) -> None:
        raise StoreUnavailableError("durable store unavailable")


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        local_database_url=f"sqlite+aiosqlite:///{tmp_path / 'local.db'}",
        fallback_store_path=tmp_path / "fallback.json",
        remote_database_url="",
        remote_rest_url="",
    )


@pytest_asyncio.fixture
async def local_kv(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'local.db'}")
    await create_tables(engine, "local_entries")
    yield SqlKeyValueStore(create_sessionmaker(engine))
    await engine.dispose()


@pytest.fixture
def fallback_kv(tmp_path) -> JsonFileKeyValueStore:
    return JsonFileKeyValueStore(tmp_path / "fallback.json")


@pytest.fixture
def remote() -> FakeOwnerStore:
    return FakeOwnerStore()


@pytest.fixture
def store(local_kv, fallback_kv, remote) -> ProgressStore:
    return ProgressStore(local_kv, fallback_kv, remote, remote_timeout=0.5)
