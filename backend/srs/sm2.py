"""SM-2 spaced repetition scheduler.

The classic SuperMemo-2 update rule used for every quiz and flashcard review.
Reference: https://super-memory.com/english/ol/sm2.htm

Key concepts:
- Quality (q): recall score 0-5. Below 3 is a failed recall.
- Ease factor (EF): per-card interval multiplier, never below 1.3.
- Interval (I): days until the next review. 1, then 6, then I * EF.
- Repetitions (n): consecutive successful recalls, reset on failure.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from backend.config import utcnow
from backend.srs.state import MIN_EASE_FACTOR, CardState

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
FAILED_INTERVAL = 1

# Quiz answer timing thresholds (milliseconds)
QUICK_WRONG_MS = 5000
FAST_CORRECT_MS = 3000
MODERATE_CORRECT_MS = 8000


class InvalidQualityError(ValueError):
    """A recall quality outside 0-5 reached the scheduler."""

    def __init__(self, quality: object) -> None:
        super().__init__(f"quality must be an integer in 0..5, got {quality!r}")
        self.quality = quality


def validate_quality(quality: object) -> int:
    """Return the quality unchanged, or raise if it is not an integer in 0..5."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(quality)
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidQualityError(quality)
    return quality


def next_ease_factor(ease_factor: float, quality: int) -> float:
    """Apply the SM-2 ease adjustment and clamp to the 1.3 floor.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    """
    miss = MAX_QUALITY - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def next_state(quality: int, prior: CardState, now: datetime | None = None) -> CardState:
    """Compute the card state after a review.

    Args:
        quality: Recall quality, 0 (blackout) to 5 (perfect).
        prior: The card's current state (or its never-reviewed default).
        now: Review time (defaults to utcnow).

    Returns:
        A new CardState. ``prior`` is left untouched.

    Raises:
        InvalidQualityError: If quality is not an integer in 0..5.
    """
    quality = validate_quality(quality)
    now = now or utcnow()

    if quality < PASSING_QUALITY:
        repetitions = 0
        interval = FAILED_INTERVAL
    else:
        repetitions = prior.repetitions + 1
        if prior.repetitions == 0:
            interval = FIRST_INTERVAL
        elif prior.repetitions == 1:
            interval = SECOND_INTERVAL
        else:
            # Round half up, not banker's rounding
            interval = int(prior.interval * prior.ease_factor + 0.5)

    return CardState(
        question_id=prior.question_id,
        ease_factor=next_ease_factor(prior.ease_factor, quality),
        interval=interval,
        repetitions=repetitions,
        next_review_date=now + timedelta(days=interval),
        last_review_date=now,
    )


QualityPolicy = Callable[[bool, int], int]


@dataclass(frozen=True)
class TimedQualityPolicy:
    """Derive a recall quality from a quiz answer and how long it took.

    Wrong answers: 1 if quick (recognized but wrong), else 0.
    Right answers: 5 if fast, 4 if moderate, 3 if slow.
    """

    quick_wrong_ms: int = QUICK_WRONG_MS
    fast_correct_ms: int = FAST_CORRECT_MS
    moderate_correct_ms: int = MODERATE_CORRECT_MS

    def __call__(self, is_correct: bool, time_taken_ms: int) -> int:
        if not is_correct:
            return 1 if time_taken_ms < self.quick_wrong_ms else 0
        if time_taken_ms < self.fast_correct_ms:
            return 5
        if time_taken_ms < self.moderate_correct_ms:
            return 4
        return 3


DEFAULT_QUALITY_POLICY = TimedQualityPolicy()


def quality_from_outcome(is_correct: bool, time_taken_ms: int) -> int:
    """Quality under the default thresholds (5s quick wrong, 3s fast, 8s moderate)."""
    return DEFAULT_QUALITY_POLICY(is_correct, time_taken_ms)
