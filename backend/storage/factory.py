"""Builds the progress store from settings.

Centralizes the choice of local and remote backends so the API and CLI
construct the same store once and pass it down.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.config import Settings
from backend.database import create_engine, create_sessionmaker, create_tables
from backend.storage.kv import (
    JsonFileKeyValueStore,
    OwnerStore,
    RestOwnerStore,
    SqlKeyValueStore,
    SqlOwnerStore,
)
from backend.storage.progress_store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class StoreResources:
    """A ready-to-use ProgressStore plus the connections it owns."""

    store: ProgressStore
    local: SqlKeyValueStore
    engines: list[AsyncEngine] = field(default_factory=list)
    rest: RestOwnerStore | None = None

    async def aclose(self) -> None:
        if self.rest is not None:
            await self.rest.aclose()
        for engine in self.engines:
            await engine.dispose()


async def _prepare(engine: AsyncEngine, table: str, label: str) -> None:
    try:
        await create_tables(engine, table)
    except SQLAlchemyError:
        # Reads and writes will fail over to their fallbacks
        logger.warning("Could not prepare %s store", label, exc_info=True)


async def open_progress_store(config: Settings) -> StoreResources:
    local_engine = create_engine(config.local_database_url, echo=config.debug)
    await _prepare(local_engine, "local_entries", "local")
    local = SqlKeyValueStore(create_sessionmaker(local_engine))
    engines = [local_engine]

    remote: OwnerStore | None = None
    rest: RestOwnerStore | None = None
    if config.remote_database_url:
        remote_engine = create_engine(config.remote_database_url, echo=config.debug)
        await _prepare(remote_engine, "user_progress", "remote")
        remote = SqlOwnerStore(create_sessionmaker(remote_engine))
        engines.append(remote_engine)
        logger.info("Remote store: SQL")
    elif config.remote_rest_url:
        rest = RestOwnerStore(config.remote_rest_url, config.remote_api_key, config.remote_table)
        remote = rest
        logger.info("Remote store: REST %s", config.remote_rest_url)
    else:
        logger.info("No remote store configured, progress stays on this device")

    store = ProgressStore(
        local=local,
        fallback=JsonFileKeyValueStore(config.fallback_store_path),
        remote=remote,
        key=config.progress_key,
        remote_timeout=config.remote_timeout_seconds,
    )
    await store.migrate_fallback()
    return StoreResources(store=store, local=local, engines=engines, rest=rest)
