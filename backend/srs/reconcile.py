"""Reconciliation of local and remote progress at sign-in.

When an anonymous session signs in, the device-local snapshot and the
account's remote snapshot may both hold progress. ``merge_aggregates``
combines them field by field:

- cardProgress, notes: key-wise union. On a key conflict the local value
  wins by default (the local session is assumed to be the most recent one),
  or the card reviewed last wins under ``ConflictPolicy.LATEST_REVIEW``.
- bookmarks, wrong answers: set union, local order first.
- study sessions: concatenation deduplicated on (date, mode, questions answered).
- streak: maximum. lastStudyDate: the later one.

"Local wins" is an approximation, not a causally correct merge: a remote
review of the same card made on another device after the last local one
is discarded.
"""

import logging
from datetime import date
from enum import Enum

from backend.srs.state import CardState, ProgressAggregate, StudySession, unique
from backend.storage.progress_store import ProgressStore, Scope

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    LOCAL_WINS = "local_wins"
    LATEST_REVIEW = "latest_review"


def _remote_is_newer(local: CardState, remote: CardState) -> bool:
    if remote.last_review_date is None:
        return False
    if local.last_review_date is None:
        return True
    return remote.last_review_date > local.last_review_date


def _merge_cards(
    local: dict[str, CardState],
    remote: dict[str, CardState],
    policy: ConflictPolicy,
) -> dict[str, CardState]:
    merged = {**remote, **local}
    if policy is ConflictPolicy.LATEST_REVIEW:
        for qid, card in local.items():
            other = remote.get(qid)
            if other is not None and _remote_is_newer(card, other):
                merged[qid] = other
    return merged


def _merge_sessions(
    local: tuple[StudySession, ...],
    remote: tuple[StudySession, ...],
) -> tuple[StudySession, ...]:
    seen = set()
    merged = []
    for session in (*local, *remote):
        if session.dedup_key in seen:
            continue
        seen.add(session.dedup_key)
        merged.append(session)
    return tuple(merged)


def _later(a: date | None, b: date | None) -> date | None:
    if a is None:
        return b
    if b is None:
        return a
    return b if b > a else a


def merge_aggregates(
    local: ProgressAggregate,
    remote: ProgressAggregate,
    policy: ConflictPolicy = ConflictPolicy.LOCAL_WINS,
) -> ProgressAggregate:
    """Combine two snapshots of the same user's progress. Pure."""
    return ProgressAggregate(
        card_progress=_merge_cards(local.card_progress, remote.card_progress, policy),
        bookmarked_questions=unique((*local.bookmarked_questions, *remote.bookmarked_questions)),
        notes={**remote.notes, **local.notes},
        study_sessions=_merge_sessions(local.study_sessions, remote.study_sessions),
        streak=max(local.streak, remote.streak),
        last_study_date=_later(local.last_study_date, remote.last_study_date),
        wrong_answers=unique((*local.wrong_answers, *remote.wrong_answers)),
    )


class ReconciliationEngine:
    """Merges local and remote progress for a user and persists the result."""

    def __init__(
        self,
        store: ProgressStore,
        policy: ConflictPolicy = ConflictPolicy.LOCAL_WINS,
        write_remote: bool = True,
    ) -> None:
        self.store = store
        self.policy = policy
        self.write_remote = write_remote

    async def reconcile(self, user_id: str) -> ProgressAggregate:
        """Return the merged aggregate for ``user_id``.

        The merged snapshot is written locally before it is returned, and
        pushed back to the remote store on a best-effort basis. If the remote
        store cannot be read, the local snapshot is returned unchanged.
        """
        local = await self.store.read(Scope.LOCAL)
        remote = await self.store.fetch(Scope.REMOTE, user_id)
        if not remote.available:
            logger.warning("Remote progress for %s unavailable, keeping local progress", user_id)
            return local

        merged = merge_aggregates(local, remote.aggregate, self.policy)
        await self.store.write(Scope.LOCAL, merged)
        if self.write_remote:
            await self.store.write(Scope.REMOTE, merged, user_id)

        logger.info(
            "Reconciled progress for %s: %d local + %d remote cards -> %d",
            user_id,
            len(local.card_progress),
            len(remote.aggregate.card_progress),
            len(merged.card_progress),
        )
        return merged
