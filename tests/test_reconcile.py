"""Tests for merging local and remote progress at sign-in."""

from datetime import date, timedelta

import pytest

from backend.srs.progress import record_answer, set_note, toggle_bookmark
from backend.srs.reconcile import ConflictPolicy, ReconciliationEngine, merge_aggregates
from backend.srs.state import CardState, ProgressAggregate, StudyMode, StudySession, get_default_aggregate
from backend.storage.progress_store import ProgressStore, Scope
from backend.storage.serialization import dumps_snapshot
from conftest import NOW, FakeOwnerStore


def _card(qid: str, reps: int, reviewed_days_ago: int | None) -> CardState:
    last = None if reviewed_days_ago is None else NOW - timedelta(days=reviewed_days_ago)
    return CardState(
        question_id=qid,
        ease_factor=2.5,
        interval=reps,
        repetitions=reps,
        next_review_date=NOW + timedelta(days=reps),
        last_review_date=last,
    )


SESSION_A = StudySession(NOW - timedelta(days=2), 10, 8, StudyMode.QUIZ)
SESSION_B = StudySession(NOW - timedelta(days=1), 20, 20, StudyMode.FLASHCARD)
SESSION_C = StudySession(NOW, 5, 1, StudyMode.REVIEW)


@pytest.fixture
def local() -> ProgressAggregate:
    return ProgressAggregate(
        card_progress={"x": _card("x", 1, 0), "shared": _card("shared", 1, 5)},
        bookmarked_questions=("x", "shared"),
        notes={"x": "local note", "shared": "local wins"},
        study_sessions=(SESSION_A, SESSION_C),
        streak=1,
        last_study_date=date(2026, 3, 14),
        wrong_answers=("x",),
    )


@pytest.fixture
def remote_aggregate() -> ProgressAggregate:
    return ProgressAggregate(
        card_progress={"y": _card("y", 3, 4), "shared": _card("shared", 4, 1)},
        bookmarked_questions=("shared", "y"),
        notes={"y": "remote note", "shared": "remote loses"},
        study_sessions=(SESSION_A, SESSION_B),
        streak=6,
        last_study_date=date(2026, 3, 13),
        wrong_answers=("y", "x"),
    )


class TestMerge:
    def test_field_policies(self, local: ProgressAggregate, remote_aggregate: ProgressAggregate) -> None:
        merged = merge_aggregates(local, remote_aggregate)
        assert set(merged.card_progress) == {"x", "y", "shared"}
        assert merged.card_progress["shared"] == local.card_progress["shared"]
        assert merged.card_progress["y"] == remote_aggregate.card_progress["y"]
        assert merged.bookmarked_questions == ("x", "shared", "y")
        assert merged.wrong_answers == ("x", "y")
        assert merged.notes == {"x": "local note", "shared": "local wins", "y": "remote note"}
        assert merged.study_sessions == (SESSION_A, SESSION_C, SESSION_B)
        assert merged.streak == 6
        assert merged.last_study_date == date(2026, 3, 14)

    def test_latest_review_policy(
        self, local: ProgressAggregate, remote_aggregate: ProgressAggregate
    ) -> None:
        merged = merge_aggregates(local, remote_aggregate, ConflictPolicy.LATEST_REVIEW)
        # Remote reviewed "shared" one day ago, local five days ago
        assert merged.card_progress["shared"] == remote_aggregate.card_progress["shared"]
        assert merged.card_progress["x"] == local.card_progress["x"]

    def test_latest_review_keeps_local_on_tie(self) -> None:
        a = ProgressAggregate(card_progress={"q": _card("q", 1, 2)})
        b = ProgressAggregate(card_progress={"q": _card("q", 5, 2)})
        assert merge_aggregates(a, b, ConflictPolicy.LATEST_REVIEW).card_progress["q"].repetitions == 1

    def test_latest_review_prefers_reviewed_card(self) -> None:
        a = ProgressAggregate(card_progress={"q": _card("q", 0, None)})
        b = ProgressAggregate(card_progress={"q": _card("q", 2, 3)})
        assert merge_aggregates(a, b, ConflictPolicy.LATEST_REVIEW).card_progress["q"].repetitions == 2

    @pytest.mark.parametrize("policy", list(ConflictPolicy))
    def test_idempotent(self, local: ProgressAggregate, policy: ConflictPolicy) -> None:
        assert merge_aggregates(local, local, policy) == local

    def test_local_card_kept_when_remote_has_none(self) -> None:
        local = record_answer(get_default_aggregate(), "X", 5, NOW)
        merged = merge_aggregates(local, get_default_aggregate())
        assert merged.card_progress["X"] == local.card_progress["X"]

    def test_last_study_date_absent_side(self) -> None:
        a = ProgressAggregate(last_study_date=None)
        b = ProgressAggregate(last_study_date=date(2026, 1, 2))
        assert merge_aggregates(a, b).last_study_date == date(2026, 1, 2)
        assert merge_aggregates(b, a).last_study_date == date(2026, 1, 2)
        assert merge_aggregates(a, a).last_study_date is None


class TestReconciliationEngine:
    @pytest.mark.asyncio
    async def test_merged_result_persisted(
        self,
        store: ProgressStore,
        remote: FakeOwnerStore,
        local: ProgressAggregate,
        remote_aggregate: ProgressAggregate,
    ) -> None:
        await store.write(Scope.LOCAL, local)
        remote.rows["user-1"] = dumps_snapshot(remote_aggregate)

        merged = await ReconciliationEngine(store).reconcile("user-1")

        assert merged == merge_aggregates(local, remote_aggregate)
        assert await store.read(Scope.LOCAL) == merged
        assert await store.read(Scope.REMOTE, "user-1") == merged

    @pytest.mark.asyncio
    async def test_remote_write_back_optional(
        self,
        store: ProgressStore,
        remote: FakeOwnerStore,
        local: ProgressAggregate,
    ) -> None:
        await store.write(Scope.LOCAL, local)
        merged = await ReconciliationEngine(store, write_remote=False).reconcile("user-1")
        assert merged == local
        assert remote.writes == []

    @pytest.mark.asyncio
    async def test_unreachable_remote_returns_local(self, local_kv, local: ProgressAggregate) -> None:
        offline = FakeOwnerStore(fail=True)
        store = ProgressStore(local_kv, remote=offline)
        await store.write(Scope.LOCAL, local)

        assert await ReconciliationEngine(store).reconcile("user-1") == local
        assert await store.read(Scope.LOCAL) == local

    @pytest.mark.asyncio
    async def test_slow_remote_returns_local(self, local_kv, local: ProgressAggregate) -> None:
        store = ProgressStore(local_kv, remote=FakeOwnerStore(delay=1.0), remote_timeout=0.05)
        await store.write(Scope.LOCAL, local)
        assert await ReconciliationEngine(store).reconcile("user-1") == local

    @pytest.mark.asyncio
    async def test_new_account_receives_device_progress(
        self,
        store: ProgressStore,
        remote: FakeOwnerStore,
    ) -> None:
        device = record_answer(get_default_aggregate(), "q1", 4, NOW)
        device = toggle_bookmark(set_note(device, "q1", "n"), "q1")
        await store.write(Scope.LOCAL, device)

        merged = await ReconciliationEngine(store).reconcile("new-user")

        assert merged == device
        assert remote.writes == ["new-user"]
