"""Progress data model: per-card scheduling state and the per-user aggregate.

Both types are immutable. Every update produces a new value via
``dataclasses.replace``; nothing mutates an aggregate in place.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from backend.config import utcnow

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3


class StudyMode(str, Enum):
    QUIZ = "quiz"
    FLASHCARD = "flashcard"
    REVIEW = "review"


@dataclass(frozen=True)
class CardState:
    """The SM-2 scheduling record for one question."""

    question_id: str
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0  # Days until next review, 0 = never reviewed
    repetitions: int = 0  # Consecutive successful recalls
    next_review_date: datetime = field(default_factory=utcnow)
    last_review_date: datetime | None = None

    @property
    def reviewed(self) -> bool:
        return self.last_review_date is not None


@dataclass(frozen=True)
class StudySession:
    """A finished quiz, flashcard or review session."""

    date: datetime
    questions_answered: int
    correct_answers: int
    mode: StudyMode

    @property
    def dedup_key(self) -> tuple[datetime, StudyMode, int]:
        return (self.date, self.mode, self.questions_answered)


@dataclass(frozen=True)
class ProgressAggregate:
    """The complete progress record for one user or anonymous device."""

    card_progress: dict[str, CardState] = field(default_factory=dict)
    bookmarked_questions: tuple[str, ...] = ()
    notes: dict[str, str] = field(default_factory=dict)
    study_sessions: tuple[StudySession, ...] = ()
    streak: int = 0
    last_study_date: date | None = None
    wrong_answers: tuple[str, ...] = ()


def initial_card_state(question_id: str, now: datetime | None = None) -> CardState:
    """Return the "never reviewed" state for a question."""
    return CardState(question_id=question_id, next_review_date=now or utcnow())


def get_card_state(aggregate: ProgressAggregate, question_id: str) -> CardState:
    """Return the stored state for a question, or its never-reviewed default."""
    return aggregate.card_progress.get(question_id) or initial_card_state(question_id)


def get_default_aggregate() -> ProgressAggregate:
    """Return an empty, zeroed aggregate."""
    return ProgressAggregate()


def unique(ids) -> tuple[str, ...]:
    """Deduplicate ids keeping first-seen order."""
    return tuple(dict.fromkeys(ids))
