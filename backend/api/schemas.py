"""Pydantic schemas for API request/response models.

Progress snapshots travel in their persisted camelCase form (see
``backend.storage.serialization``) and are typed here as plain objects.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.srs.selection import MemoryLevel
from backend.srs.state import StudyMode

# --- Answers ---


class AnswerRequest(BaseModel):
    """Self-reported flashcard recall."""

    question_id: str
    quality: int  # 0-5, validated by the scheduler


class QuizAnswerRequest(BaseModel):
    """A quiz answer; quality is derived from correctness and timing."""

    question_id: str
    is_correct: bool
    time_taken_ms: int = Field(ge=0)


class CardStateResponse(BaseModel):
    question_id: str
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime
    last_review_date: datetime | None


class AnswerResponse(BaseModel):
    """Scheduling result after an answer has been recorded and saved."""

    card: CardStateResponse
    memory_level: MemoryLevel
    streak: int
    synced: bool


# --- Selection ---


class QuestionIdsRequest(BaseModel):
    question_ids: list[str]


class DueCardsResponse(BaseModel):
    due: list[str]
    weak: list[str]


class ClassifyResponse(BaseModel):
    question_id: str
    memory_level: MemoryLevel


# --- Bookmarks, notes, sessions ---


class BookmarkResponse(BaseModel):
    question_id: str
    bookmarked: bool


class NoteRequest(BaseModel):
    text: str


class SessionRequest(BaseModel):
    questions_answered: int = Field(ge=0)
    correct_answers: int = Field(ge=0)
    mode: StudyMode


class SaveResponse(BaseModel):
    local: bool
    synced: bool


# --- Stats ---


class QuestionRefModel(BaseModel):
    id: str
    topic: str = ""


class StatsRequest(BaseModel):
    questions: list[QuestionRefModel]


class TopicProgressResponse(BaseModel):
    topic: str
    total: int
    answered: int
    correct: int
    percentage: int


class ProgressStatsResponse(BaseModel):
    """Dashboard numbers for a question set."""

    streak: int
    correct_rate: int
    due_today: int
    mastered: int
    reviewed: int
    total: int
    new: list[str]
    weak: list[str]
    strong: list[str]
    bookmarked: list[str]
    memory_levels: dict[MemoryLevel, int]
    topics: list[TopicProgressResponse]
    study_sessions: int
