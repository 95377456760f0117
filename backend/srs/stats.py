"""Dashboard statistics derived from a ProgressAggregate."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from backend.catalog import QuestionRef, topics
from backend.config import utcnow
from backend.srs.selection import MemoryLevel, is_due, is_weak, memory_level
from backend.srs.state import CardState, ProgressAggregate

MASTERED_MIN_EASE = 2.5
MASTERED_MIN_REPETITIONS = 3


@dataclass
class TopicProgress:
    topic: str
    total: int
    answered: int
    correct: int

    @property
    def percentage(self) -> int:
        return round(self.answered / self.total * 100) if self.total else 0


@dataclass
class SetCategories:
    """Buckets used by the per-set review screen."""

    new: list[str] = field(default_factory=list)
    weak: list[str] = field(default_factory=list)
    strong: list[str] = field(default_factory=list)
    due: list[str] = field(default_factory=list)
    bookmarked: list[str] = field(default_factory=list)


@dataclass
class ReviewHistory:
    """Reviewed cards, most recently reviewed first, grouped by memory level."""

    cards: list[CardState] = field(default_factory=list)
    by_level: dict[MemoryLevel, list[CardState]] = field(
        default_factory=lambda: {level: [] for level in MemoryLevel}
    )
    due: list[CardState] = field(default_factory=list)


def correct_rate(aggregate: ProgressAggregate) -> int:
    """Percentage of correct answers across all recorded sessions."""
    answered = sum(s.questions_answered for s in aggregate.study_sessions)
    if not answered:
        return 0
    correct = sum(s.correct_answers for s in aggregate.study_sessions)
    return round(correct / answered * 100)


def mastered_count(aggregate: ProgressAggregate) -> int:
    return sum(
        1
        for card in aggregate.card_progress.values()
        if card.ease_factor >= MASTERED_MIN_EASE and card.repetitions >= MASTERED_MIN_REPETITIONS
    )


def topic_progress(aggregate: ProgressAggregate, catalog: list[QuestionRef]) -> list[TopicProgress]:
    result = []
    for topic in topics(catalog):
        ids = [q.id for q in catalog if q.topic == topic]
        cards = [aggregate.card_progress[qid] for qid in ids if qid in aggregate.card_progress]
        result.append(
            TopicProgress(
                topic=topic,
                total=len(ids),
                answered=len(cards),
                correct=sum(1 for c in cards if c.repetitions > 0),
            )
        )
    return result


def categorize(
    aggregate: ProgressAggregate,
    ids: Iterable[str],
    now: datetime | None = None,
) -> SetCategories:
    now = now or utcnow()
    bookmarks = set(aggregate.bookmarked_questions)
    categories = SetCategories()
    for qid in ids:
        card = aggregate.card_progress.get(qid)
        if card is None or not card.reviewed:
            categories.new.append(qid)
        else:
            (categories.weak if is_weak(card) else categories.strong).append(qid)
            if is_due(card, now):
                categories.due.append(qid)
        if qid in bookmarks:
            categories.bookmarked.append(qid)
    return categories


def review_history(aggregate: ProgressAggregate, now: datetime | None = None) -> ReviewHistory:
    now = now or utcnow()
    reviewed = [c for c in aggregate.card_progress.values() if c.last_review_date is not None]
    reviewed.sort(key=lambda c: c.last_review_date, reverse=True)

    history = ReviewHistory(cards=reviewed)
    for card in reviewed:
        history.by_level[memory_level(card)].append(card)
        if is_due(card, now):
            history.due.append(card)
    return history
