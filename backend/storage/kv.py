"""Key-value backends behind the progress store.

Local (device-bound):
- SqlKeyValueStore: durable store in a local SQLite database.
- JsonFileKeyValueStore: synchronous single-file fallback used when the
  durable store cannot be opened or written.

Remote (account-bound, keyed by owner id):
- SqlOwnerStore: a ``user_progress`` table reached through SQLAlchemy.
- RestOwnerStore: the same table exposed over a PostgREST-style HTTP API.

Backends raise ``StoreUnavailableError`` on any failure; deciding what to do
about it is the progress store's job.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

import httpx
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.config import utcnow
from backend.models.local_entry import LocalEntry
from backend.models.user_progress import UserProgress

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """A backing store could not be read or written."""


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class OwnerStore(Protocol):
    async def get(self, owner_id: str) -> str | None: ...

    async def upsert(self, owner_id: str, value: str) -> None: ...


class SqlKeyValueStore:
    """Durable local key-value store."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def get(self, key: str) -> str | None:
        try:
            async with self.sessionmaker() as db:
                entry = await db.get(LocalEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"local read of {key!r} failed") from exc

    async def put(self, key: str, value: str) -> None:
        try:
            async with self.sessionmaker() as db:
                entry = await db.get(LocalEntry, key)
                if entry is None:
                    db.add(LocalEntry(key=key, value=value))
                else:
                    entry.value = value
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"local write of {key!r} failed") from exc

    async def delete(self, key: str) -> None:
        try:
            async with self.sessionmaker() as db:
                await db.execute(delete(LocalEntry).where(LocalEntry.key == key))
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"local delete of {key!r} failed") from exc

    async def ping(self) -> bool:
        try:
            async with self.sessionmaker() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Local database did not answer ping", exc_info=True)
            return False
        return True


class JsonFileKeyValueStore:
    """Synchronous fallback store: every key lives in one JSON object on disk.

    The I/O is blocking on purpose; the async methods only exist so the
    store is interchangeable with the durable one.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreUnavailableError(f"fallback file {self.path} unreadable") from exc
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreUnavailableError(f"fallback file {self.path} not writable") from exc

    def get_sync(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def put_sync(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except StoreUnavailableError:
            logger.warning("Fallback file %s is corrupt, overwriting it", self.path)
            data = {}
        data[key] = value
        self._write_all(data)

    def delete_sync(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)

    async def get(self, key: str) -> str | None:
        return self.get_sync(key)

    async def put(self, key: str, value: str) -> None:
        self.put_sync(key, value)

    async def delete(self, key: str) -> None:
        self.delete_sync(key)


class SqlOwnerStore:
    """Remote progress table reached through a SQLAlchemy engine."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def get(self, owner_id: str) -> str | None:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(
                    select(UserProgress.progress).where(UserProgress.user_id == owner_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"remote read for {owner_id} failed") from exc

    async def upsert(self, owner_id: str, value: str) -> None:
        try:
            async with self.sessionmaker() as db:
                row = await db.get(UserProgress, owner_id)
                if row is None:
                    db.add(UserProgress(user_id=owner_id, progress=value))
                else:
                    row.progress = value
                    row.updated_at = utcnow()
                await db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"remote write for {owner_id} failed") from exc


class RestOwnerStore:
    """Remote progress table behind a PostgREST-style endpoint.

    Rows look like ``{"user_id": ..., "progress": {...}, "updated_at": ...}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "user_progress",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def get(self, owner_id: str) -> str | None:
        try:
            response = await self._http().get(
                self.url,
                params={"select": "progress", "user_id": f"eq.{owner_id}"},
                headers=self.headers,
            )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StoreUnavailableError(f"remote read for {owner_id} failed") from exc

        if not isinstance(rows, list):
            raise StoreUnavailableError(f"remote read for {owner_id}: expected a list of rows")
        if not rows:
            return None
        if not isinstance(rows[0], dict):
            raise StoreUnavailableError(f"remote read for {owner_id}: malformed row")
        progress = rows[0].get("progress")
        if progress is None:
            return None
        return progress if isinstance(progress, str) else json.dumps(progress)

    async def upsert(self, owner_id: str, value: str) -> None:
        payload = {
            "user_id": owner_id,
            "progress": json.loads(value),
            "updated_at": utcnow().isoformat(),
        }
        try:
            response = await self._http().post(
                self.url,
                json=payload,
                headers={**self.headers, "Prefer": "resolution=merge-duplicates"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StoreUnavailableError(f"remote write for {owner_id} failed") from exc

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
