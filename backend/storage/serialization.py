"""Persisted snapshot schema for ProgressAggregate.

The stored form is a JSON object with camelCase keys and ISO-8601 dates.
This module is the only place that knows about that shape:

- Legacy snake_case keys are accepted on read (alias population), never written.
- Timezone-aware timestamps (``...Z``) are normalized to naive UTC.
- Reads are lenient field by field: an invalid field falls back to its
  default, an invalid card or session record is dropped, and only an
  unparseable root yields the default aggregate.
"""

import json
import logging
from datetime import UTC, date, datetime
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from backend.srs.state import (
    DEFAULT_EASE_FACTOR,
    MIN_EASE_FACTOR,
    CardState,
    ProgressAggregate,
    StudyMode,
    StudySession,
    get_default_aggregate,
    unique,
)

logger = logging.getLogger(__name__)

# Date.prototype.toDateString() output written by older clients, e.g. "Sat Oct 18 2026"
LEGACY_DATE_FORMAT = "%a %b %d %Y"

_MISSING = object()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def _parse_study_date(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.strptime(value, LEGACY_DATE_FORMAT).date()
        except ValueError:
            pass
        if "T" in value:
            return value[:10]
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
StudyDate = Annotated[date, BeforeValidator(_parse_study_date)]
EaseFactor = Annotated[float, AfterValidator(lambda v: max(MIN_EASE_FACTOR, v))]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CardStateRecord(_Record):
    question_id: str | None = None
    ease_factor: EaseFactor = DEFAULT_EASE_FACTOR
    interval: int = Field(default=0, ge=0)
    repetitions: int = Field(default=0, ge=0)
    next_review_date: UtcDatetime
    last_review_date: UtcDatetime | None = None


class StudySessionRecord(_Record):
    date: UtcDatetime
    questions_answered: int = Field(ge=0)
    correct_answers: int = Field(ge=0)
    mode: StudyMode


class ProgressRecord(_Record):
    card_progress: dict[str, CardStateRecord] = Field(default_factory=dict)
    bookmarked_questions: list[str] = Field(default_factory=list)
    notes: dict[str, str] = Field(default_factory=dict)
    study_sessions: list[StudySessionRecord] = Field(default_factory=list)
    streak: int = Field(default=0, ge=0)
    last_study_date: StudyDate | None = None
    wrong_answers: list[str] = Field(default_factory=list)


_CARD = TypeAdapter(CardStateRecord)
_SESSION = TypeAdapter(StudySessionRecord)
_IDS = TypeAdapter(list[str])
_NOTES = TypeAdapter(dict[str, str])
_STREAK = TypeAdapter(Annotated[int, Field(ge=0)])
_STUDY_DATE = TypeAdapter(StudyDate)


def dump_snapshot(aggregate: ProgressAggregate) -> dict[str, Any]:
    """Convert an aggregate to its JSON-ready persisted form."""
    record = ProgressRecord(
        card_progress={
            qid: CardStateRecord(
                question_id=card.question_id,
                ease_factor=card.ease_factor,
                interval=card.interval,
                repetitions=card.repetitions,
                next_review_date=card.next_review_date,
                last_review_date=card.last_review_date,
            )
            for qid, card in aggregate.card_progress.items()
        },
        bookmarked_questions=list(aggregate.bookmarked_questions),
        notes=dict(aggregate.notes),
        study_sessions=[
            StudySessionRecord(
                date=s.date,
                questions_answered=s.questions_answered,
                correct_answers=s.correct_answers,
                mode=s.mode,
            )
            for s in aggregate.study_sessions
        ],
        streak=aggregate.streak,
        last_study_date=aggregate.last_study_date,
        wrong_answers=list(aggregate.wrong_answers),
    )
    return record.model_dump(mode="json", by_alias=True)


def dumps_snapshot(aggregate: ProgressAggregate) -> str:
    return json.dumps(dump_snapshot(aggregate), ensure_ascii=False)


def _pick(data: dict[str, Any], name: str) -> Any:
    for key in (to_camel(name), name):
        if key in data:
            return data[key]
    return _MISSING


def _load_field(data: dict[str, Any], name: str, adapter: TypeAdapter, default: Any) -> Any:
    value = _pick(data, name)
    if value is _MISSING or value is None:
        return default
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        logger.warning("Discarding invalid %s in progress snapshot (%d errors)", name, exc.error_count())
        return default


def _load_cards(data: dict[str, Any]) -> dict[str, CardState]:
    raw = _pick(data, "card_progress")
    if raw is _MISSING or raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning("Discarding cardProgress: expected an object, got %s", type(raw).__name__)
        return {}

    cards: dict[str, CardState] = {}
    for qid, entry in raw.items():
        try:
            record = _CARD.validate_python(entry)
        except ValidationError:
            logger.warning("Dropping invalid card record for question %s", qid)
            continue
        # The map key is authoritative for the question id
        cards[str(qid)] = CardState(
            question_id=str(qid),
            ease_factor=record.ease_factor,
            interval=record.interval,
            repetitions=record.repetitions,
            next_review_date=record.next_review_date,
            last_review_date=record.last_review_date,
        )
    return cards


def _load_sessions(data: dict[str, Any]) -> tuple[StudySession, ...]:
    raw = _pick(data, "study_sessions")
    if raw is _MISSING or raw is None:
        return ()
    if not isinstance(raw, list):
        logger.warning("Discarding studySessions: expected a list, got %s", type(raw).__name__)
        return ()

    sessions = []
    for entry in raw:
        try:
            record = _SESSION.validate_python(entry)
        except ValidationError:
            logger.warning("Dropping invalid study session record")
            continue
        sessions.append(
            StudySession(
                date=record.date,
                questions_answered=record.questions_answered,
                correct_answers=record.correct_answers,
                mode=record.mode,
            )
        )
    return tuple(sessions)


def load_snapshot(raw: str | bytes | dict[str, Any] | None) -> ProgressAggregate:
    """Parse a persisted snapshot, substituting defaults for anything invalid."""
    if raw is None:
        return get_default_aggregate()
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Progress snapshot is not valid JSON, using defaults")
            return get_default_aggregate()
    else:
        data = raw
    if not isinstance(data, dict):
        logger.warning("Progress snapshot root is %s, not an object, using defaults", type(data).__name__)
        return get_default_aggregate()

    return ProgressAggregate(
        card_progress=_load_cards(data),
        bookmarked_questions=unique(_load_field(data, "bookmarked_questions", _IDS, [])),
        notes=_load_field(data, "notes", _NOTES, {}),
        study_sessions=_load_sessions(data),
        streak=_load_field(data, "streak", _STREAK, 0),
        last_study_date=_load_field(data, "last_study_date", _STUDY_DATE, None),
        wrong_answers=unique(_load_field(data, "wrong_answers", _IDS, [])),
    )


def export_data(aggregate: ProgressAggregate) -> str:
    """Pretty-printed snapshot for the user to download."""
    return json.dumps(dump_snapshot(aggregate), indent=2, ensure_ascii=False)


def import_data(text: str) -> ProgressAggregate | None:
    """Parse an exported snapshot. Returns None when the text is not a JSON object."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return load_snapshot(data)
