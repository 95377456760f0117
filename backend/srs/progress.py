"""Functional updates applied to a ProgressAggregate by study actions.

Each function returns a new aggregate; the caller persists it.
"""

from dataclasses import replace
from datetime import datetime

from backend.config import utcnow
from backend.srs.sm2 import QualityPolicy, next_state, quality_from_outcome
from backend.srs.state import ProgressAggregate, StudySession, get_card_state, unique
from backend.srs.streak import update_streak


def record_answer(
    aggregate: ProgressAggregate,
    question_id: str,
    quality: int,
    now: datetime | None = None,
) -> ProgressAggregate:
    """Schedule the card for ``question_id`` and count today toward the streak."""
    now = now or utcnow()
    card = next_state(quality, get_card_state(aggregate, question_id), now)
    updated = replace(aggregate, card_progress={**aggregate.card_progress, question_id: card})
    return update_streak(updated, now.date())


def record_quiz_answer(
    aggregate: ProgressAggregate,
    question_id: str,
    is_correct: bool,
    time_taken_ms: int,
    now: datetime | None = None,
    policy: QualityPolicy = quality_from_outcome,
) -> ProgressAggregate:
    """Record a quiz answer: derive quality from timing, then track wrong answers."""
    updated = record_answer(aggregate, question_id, policy(is_correct, time_taken_ms), now)
    if is_correct:
        wrong = tuple(qid for qid in updated.wrong_answers if qid != question_id)
    else:
        wrong = unique((*updated.wrong_answers, question_id))
    return replace(updated, wrong_answers=wrong)


def toggle_bookmark(aggregate: ProgressAggregate, question_id: str) -> ProgressAggregate:
    if question_id in aggregate.bookmarked_questions:
        bookmarks = tuple(qid for qid in aggregate.bookmarked_questions if qid != question_id)
    else:
        bookmarks = (*aggregate.bookmarked_questions, question_id)
    return replace(aggregate, bookmarked_questions=bookmarks)


def set_note(aggregate: ProgressAggregate, question_id: str, text: str) -> ProgressAggregate:
    """Attach a note to a question. Blank text removes the note."""
    notes = {k: v for k, v in aggregate.notes.items() if k != question_id}
    if text.strip():
        notes[question_id] = text
    return replace(aggregate, notes=notes)


def record_session(aggregate: ProgressAggregate, session: StudySession) -> ProgressAggregate:
    return replace(aggregate, study_sessions=(*aggregate.study_sessions, session))


def recent_sessions(aggregate: ProgressAggregate, limit: int | None = None) -> list[StudySession]:
    """Sessions newest first."""
    ordered = sorted(aggregate.study_sessions, key=lambda s: s.date, reverse=True)
    return ordered[:limit] if limit is not None else ordered
