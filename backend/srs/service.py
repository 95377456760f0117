"""Progress service: the operations the study screens call.

Wires the pure scheduling functions to the progress store and the
reconciliation engine. Pure operations return a new aggregate which the
caller persists with ``save_progress``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from backend.config import utcnow
from backend.srs import progress
from backend.srs.reconcile import ReconciliationEngine
from backend.srs.selection import MemoryLevel, classify, due_cards
from backend.srs.sm2 import QualityPolicy, quality_from_outcome
from backend.srs.state import ProgressAggregate, get_default_aggregate
from backend.storage.progress_store import ProgressStore, SaveResult, Scope
from backend.storage.serialization import import_data

logger = logging.getLogger(__name__)


class ProgressService:
    def __init__(
        self,
        store: ProgressStore,
        engine: ReconciliationEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
        quality_policy: QualityPolicy = quality_from_outcome,
    ) -> None:
        self.store = store
        self.engine = engine or ReconciliationEngine(store)
        self.clock = clock
        self.quality_policy = quality_policy

    def get_default_aggregate(self) -> ProgressAggregate:
        return get_default_aggregate()

    async def load_progress(self, user_id: str | None = None) -> ProgressAggregate:
        """Local progress when anonymous, reconciled local + remote when signed in."""
        if user_id is None:
            return await self.store.read(Scope.LOCAL)
        return await self.engine.reconcile(user_id)

    async def save_progress(self, user_id: str | None, aggregate: ProgressAggregate) -> SaveResult:
        result = await self.store.save(aggregate, user_id)
        if user_id is not None and not result.remote:
            logger.info("Progress for %s saved locally only", user_id)
        return result

    def record_answer(
        self, aggregate: ProgressAggregate, question_id: str, quality: int
    ) -> ProgressAggregate:
        return progress.record_answer(aggregate, question_id, quality, self.clock())

    def record_quiz_answer(
        self,
        aggregate: ProgressAggregate,
        question_id: str,
        is_correct: bool,
        time_taken_ms: int,
    ) -> ProgressAggregate:
        return progress.record_quiz_answer(
            aggregate, question_id, is_correct, time_taken_ms, self.clock(), self.quality_policy
        )

    def due_cards(self, aggregate: ProgressAggregate, ids: Iterable[str]) -> list[str]:
        return due_cards(aggregate, ids, self.clock())

    def classify(self, aggregate: ProgressAggregate, question_id: str) -> MemoryLevel:
        return classify(aggregate, question_id)

    async def reset_progress(self, user_id: str | None = None) -> ProgressAggregate:
        """Replace the user's progress with a fresh empty aggregate everywhere."""
        fresh = get_default_aggregate()
        await self.store.clear_local()
        await self.save_progress(user_id, fresh)
        logger.info("Progress reset%s", f" for {user_id}" if user_id else "")
        return fresh

    async def import_progress(self, user_id: str | None, text: str) -> ProgressAggregate | None:
        """Replace progress with an exported snapshot. None if the text is not a snapshot."""
        imported = import_data(text)
        if imported is None:
            logger.warning("Rejected progress import: not a JSON object")
            return None
        await self.save_progress(user_id, imported)
        return imported
