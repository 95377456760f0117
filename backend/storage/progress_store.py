"""Whole-snapshot persistence of progress to the local and remote stores.

Local is authoritative and must work offline; remote is best effort:

- Reads never raise. Anything unreadable comes back as the default aggregate
  with ``available=False`` so reconciliation can tell "empty" from "unreachable".
- Writes never raise. Failures are logged and reported as ``False``.
- Remote calls are bounded by ``remote_timeout`` seconds.
- ``save`` finishes the local write before issuing the remote one.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from backend.srs.state import ProgressAggregate, get_default_aggregate
from backend.storage.kv import JsonFileKeyValueStore, KeyValueStore, OwnerStore, StoreUnavailableError
from backend.storage.serialization import dumps_snapshot, load_snapshot

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_KEY = "quiz-app-progress"
DEFAULT_REMOTE_TIMEOUT = 5.0


class Scope(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class StoreRead:
    aggregate: ProgressAggregate
    available: bool


@dataclass(frozen=True)
class SaveResult:
    local: bool
    remote: bool | None = None  # None when no remote write was attempted


class ProgressStore:
    """Reads and writes full progress snapshots.

    Construct once per process and pass it down; it holds no per-user state.
    """

    def __init__(
        self,
        local: KeyValueStore,
        fallback: JsonFileKeyValueStore | None = None,
        remote: OwnerStore | None = None,
        key: str = DEFAULT_PROGRESS_KEY,
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
    ) -> None:
        self.local = local
        self.fallback = fallback
        self.remote = remote
        self.key = key
        self.remote_timeout = remote_timeout

    @property
    def has_remote(self) -> bool:
        return self.remote is not None

    async def fetch(self, scope: Scope, user_id: str | None = None) -> StoreRead:
        if scope is Scope.LOCAL:
            return await self._fetch_local()
        return await self._fetch_remote(user_id)

    async def read(self, scope: Scope, user_id: str | None = None) -> ProgressAggregate:
        return (await self.fetch(scope, user_id)).aggregate

    async def write(self, scope: Scope, aggregate: ProgressAggregate, user_id: str | None = None) -> bool:
        payload = dumps_snapshot(aggregate)
        if scope is Scope.LOCAL:
            return await self._write_local(payload)
        return await self._write_remote(user_id, payload)

    async def save(self, aggregate: ProgressAggregate, user_id: str | None = None) -> SaveResult:
        """Write locally, then remotely when a user is signed in."""
        payload = dumps_snapshot(aggregate)
        local_ok = await self._write_local(payload)
        if user_id is None:
            return SaveResult(local=local_ok)
        return SaveResult(local=local_ok, remote=await self._write_remote(user_id, payload))

    async def clear_local(self) -> None:
        """Remove the local snapshot from both the durable and fallback stores."""
        try:
            await self.local.delete(self.key)
        except StoreUnavailableError:
            logger.error("Could not clear local progress", exc_info=True)
        if self.fallback is not None:
            try:
                self.fallback.delete_sync(self.key)
            except StoreUnavailableError:
                logger.error("Could not clear fallback progress", exc_info=True)

    async def migrate_fallback(self) -> bool:
        """Copy a snapshot that only exists in the fallback store into the durable store.

        Returns True if something was migrated.
        """
        if self.fallback is None:
            return False
        try:
            if await self.local.get(self.key) is not None:
                return False
            raw = self.fallback.get_sync(self.key)
            if raw is None:
                return False
            await self.local.put(self.key, dumps_snapshot(load_snapshot(raw)))
        except StoreUnavailableError:
            logger.warning("Fallback migration skipped", exc_info=True)
            return False
        logger.info("Migrated progress from fallback store to durable store")
        return True

    async def _fetch_local(self) -> StoreRead:
        try:
            raw = await self.local.get(self.key)
        except StoreUnavailableError:
            logger.warning("Durable local store unavailable, trying fallback", exc_info=True)
            if self.fallback is None:
                return StoreRead(get_default_aggregate(), available=False)
            try:
                raw = self.fallback.get_sync(self.key)
            except StoreUnavailableError:
                logger.warning("Fallback store unavailable, using empty progress", exc_info=True)
                return StoreRead(get_default_aggregate(), available=False)
        return StoreRead(load_snapshot(raw), available=True)

    async def _write_local(self, payload: str) -> bool:
        try:
            await self.local.put(self.key, payload)
            return True
        except StoreUnavailableError:
            logger.warning("Durable local write failed, using fallback", exc_info=True)
        if self.fallback is None:
            logger.error("Local progress not saved: no fallback store configured")
            return False
        try:
            self.fallback.put_sync(self.key, payload)
            return True
        except StoreUnavailableError:
            logger.error("Local progress not saved: fallback write failed", exc_info=True)
            return False

    async def _fetch_remote(self, user_id: str | None) -> StoreRead:
        if self.remote is None or user_id is None:
            return StoreRead(get_default_aggregate(), available=False)
        try:
            raw = await asyncio.wait_for(self.remote.get(user_id), timeout=self.remote_timeout)
        except TimeoutError:
            logger.warning("Remote read for %s timed out after %.1fs", user_id, self.remote_timeout)
            return StoreRead(get_default_aggregate(), available=False)
        except StoreUnavailableError:
            logger.warning("Remote read for %s failed", user_id, exc_info=True)
            return StoreRead(get_default_aggregate(), available=False)
        return StoreRead(load_snapshot(raw), available=True)

    async def _write_remote(self, user_id: str | None, payload: str) -> bool:
        if self.remote is None or user_id is None:
            return False
        try:
            await asyncio.wait_for(self.remote.upsert(user_id, payload), timeout=self.remote_timeout)
        except TimeoutError:
            logger.error("Remote write for %s timed out after %.1fs", user_id, self.remote_timeout)
            return False
        except StoreUnavailableError:
            logger.error("Remote write for %s failed", user_id, exc_info=True)
            return False
        return True
