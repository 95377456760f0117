"""API routes for study progress.

Every route takes an optional ``user_id`` query parameter: absent means an
anonymous device session (local store only), present means a signed-in
user whose progress is also synced to the remote store.
"""

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    BookmarkResponse,
    CardStateResponse,
    ClassifyResponse,
    DueCardsResponse,
    NoteRequest,
    ProgressStatsResponse,
    QuestionIdsRequest,
    QuizAnswerRequest,
    SaveResponse,
    SessionRequest,
    StatsRequest,
    TopicProgressResponse,
)
from backend.catalog import QuestionRef
from backend.srs import progress, stats
from backend.srs.selection import MemoryLevel, memory_level, weak_cards
from backend.srs.service import ProgressService
from backend.srs.sm2 import InvalidQualityError
from backend.srs.state import ProgressAggregate, StudySession
from backend.storage.progress_store import SaveResult, Scope
from backend.storage.serialization import dump_snapshot, export_data, load_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])


def get_progress_service(request: Request) -> ProgressService:
    """Return the ProgressService created in the app lifespan."""
    return request.app.state.progress_service


def _synced(result: SaveResult) -> bool:
    return bool(result.remote)


async def _current(service: ProgressService) -> ProgressAggregate:
    # Local holds the reconciled snapshot after the user's last load
    return await service.store.read(Scope.LOCAL)


async def _answered(
    service: ProgressService,
    user_id: str | None,
    updated: ProgressAggregate,
    question_id: str,
) -> AnswerResponse:
    result = await service.save_progress(user_id, updated)
    card = updated.card_progress[question_id]
    return AnswerResponse(
        card=CardStateResponse(**asdict(card)),
        memory_level=memory_level(card),
        streak=updated.streak,
        synced=_synced(result),
    )


@router.get("")
async def load(
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> dict[str, Any]:
    """Load progress, reconciling with the remote store for signed-in users."""
    return dump_snapshot(await service.load_progress(user_id))


@router.put("", response_model=SaveResponse)
async def save(
    snapshot: dict[str, Any] = Body(...),
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> SaveResponse:
    """Replace stored progress with a full snapshot."""
    result = await service.save_progress(user_id, load_snapshot(snapshot))
    return SaveResponse(local=result.local, synced=_synced(result))


@router.post("/answer", response_model=AnswerResponse)
async def answer(
    request: AnswerRequest,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> AnswerResponse:
    """Record a self-rated flashcard recall."""
    aggregate = await _current(service)
    try:
        updated = service.record_answer(aggregate, request.question_id, request.quality)
    except InvalidQualityError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return await _answered(service, user_id, updated, request.question_id)


@router.post("/quiz-answer", response_model=AnswerResponse)
async def quiz_answer(
    request: QuizAnswerRequest,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> AnswerResponse:
    """Record a quiz answer; its quality comes from correctness and response time."""
    aggregate = await _current(service)
    updated = service.record_quiz_answer(
        aggregate, request.question_id, request.is_correct, request.time_taken_ms
    )
    return await _answered(service, user_id, updated, request.question_id)


@router.post("/due", response_model=DueCardsResponse)
async def due(
    request: QuestionIdsRequest,
    service: ProgressService = Depends(get_progress_service),
) -> DueCardsResponse:
    """Which of the given questions are due, and which need extra practice."""
    aggregate = await _current(service)
    return DueCardsResponse(
        due=service.due_cards(aggregate, request.question_ids),
        weak=weak_cards(aggregate, request.question_ids),
    )


@router.get("/classify/{question_id}", response_model=ClassifyResponse)
async def classify(
    question_id: str,
    service: ProgressService = Depends(get_progress_service),
) -> ClassifyResponse:
    aggregate = await _current(service)
    return ClassifyResponse(question_id=question_id, memory_level=service.classify(aggregate, question_id))


@router.post("/bookmarks/{question_id}", response_model=BookmarkResponse)
async def toggle_bookmark(
    question_id: str,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> BookmarkResponse:
    updated = progress.toggle_bookmark(await _current(service), question_id)
    await service.save_progress(user_id, updated)
    return BookmarkResponse(
        question_id=question_id,
        bookmarked=question_id in updated.bookmarked_questions,
    )


@router.put("/notes/{question_id}", response_model=SaveResponse)
async def set_note(
    question_id: str,
    request: NoteRequest,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> SaveResponse:
    """Attach a note to a question; an empty note removes it."""
    updated = progress.set_note(await _current(service), question_id, request.text)
    result = await service.save_progress(user_id, updated)
    return SaveResponse(local=result.local, synced=_synced(result))


@router.post("/sessions", response_model=SaveResponse)
async def record_session(
    request: SessionRequest,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> SaveResponse:
    """Append a finished study session."""
    session = StudySession(
        date=service.clock(),
        questions_answered=request.questions_answered,
        correct_answers=request.correct_answers,
        mode=request.mode,
    )
    updated = progress.record_session(await _current(service), session)
    result = await service.save_progress(user_id, updated)
    return SaveResponse(local=result.local, synced=_synced(result))


@router.post("/stats", response_model=ProgressStatsResponse)
async def progress_stats(
    request: StatsRequest,
    service: ProgressService = Depends(get_progress_service),
) -> ProgressStatsResponse:
    """Dashboard statistics for the given question set."""
    aggregate = await _current(service)
    now = service.clock()
    catalog = [QuestionRef(id=q.id, topic=q.topic) for q in request.questions]
    ids = [q.id for q in catalog]

    categories = stats.categorize(aggregate, ids, now)
    history = stats.review_history(aggregate, now)

    return ProgressStatsResponse(
        streak=aggregate.streak,
        correct_rate=stats.correct_rate(aggregate),
        due_today=len(service.due_cards(aggregate, ids)),
        mastered=stats.mastered_count(aggregate),
        reviewed=len(ids) - len(categories.new),
        total=len(ids),
        new=categories.new,
        weak=categories.weak,
        strong=categories.strong,
        bookmarked=categories.bookmarked,
        memory_levels={level: len(history.by_level[level]) for level in MemoryLevel},
        topics=[
            TopicProgressResponse(
                topic=t.topic,
                total=t.total,
                answered=t.answered,
                correct=t.correct,
                percentage=t.percentage,
            )
            for t in stats.topic_progress(aggregate, catalog)
        ],
        study_sessions=len(aggregate.study_sessions),
    )


@router.get("/export", response_class=PlainTextResponse)
async def export(service: ProgressService = Depends(get_progress_service)) -> str:
    """Download progress as pretty-printed JSON."""
    return export_data(await _current(service))


@router.post("/import")
async def import_progress(
    request: Request,
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> dict[str, Any]:
    """Replace progress with a previously exported snapshot."""
    text = (await request.body()).decode("utf-8", errors="replace")
    imported = await service.import_progress(user_id, text)
    if imported is None:
        raise HTTPException(status_code=400, detail="Invalid progress file")
    return dump_snapshot(imported)


@router.post("/reset")
async def reset(
    user_id: str | None = None,
    service: ProgressService = Depends(get_progress_service),
) -> dict[str, Any]:
    """Erase all progress for this device (and the account when signed in)."""
    return dump_snapshot(await service.reset_progress(user_id))
