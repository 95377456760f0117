"""Due-set selection and memory-level classification.

Pure functions over a ProgressAggregate and a list of candidate question ids.
Two distinct "weak" notions live here on purpose:

- ``memory_level`` buckets a card into forgotten/weak/moderate/strong/mastered
  for the review history display.
- ``is_weak`` is the looser "needs extra practice" filter used when building
  a targeted review set.
"""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from backend.config import utcnow
from backend.srs.state import CardState, ProgressAggregate, get_card_state


class MemoryLevel(str, Enum):
    FORGOTTEN = "forgotten"
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    MASTERED = "mastered"


def is_due(card: CardState | None, now: datetime | None = None) -> bool:
    """Return True if the card has never been reviewed or its review date has passed."""
    if card is None:
        return True
    return card.next_review_date <= (now or utcnow())


def due_cards(
    aggregate: ProgressAggregate,
    ids: Iterable[str],
    now: datetime | None = None,
) -> list[str]:
    """Return the due question ids, in the order given."""
    now = now or utcnow()
    return [qid for qid in ids if is_due(aggregate.card_progress.get(qid), now)]


def memory_level(card: CardState) -> MemoryLevel:
    """Classify a card. Checks run in order and the first match wins."""
    if card.ease_factor < 1.5 or card.repetitions == 0:
        return MemoryLevel.FORGOTTEN
    if card.ease_factor < 2.0 or card.repetitions < 2:
        return MemoryLevel.WEAK
    if card.ease_factor < 2.3 or card.repetitions < 4:
        return MemoryLevel.MODERATE
    if card.ease_factor < 2.7:
        return MemoryLevel.STRONG
    return MemoryLevel.MASTERED


def classify(aggregate: ProgressAggregate, question_id: str) -> MemoryLevel:
    """Memory level of a question; never-reviewed questions count as forgotten."""
    return memory_level(get_card_state(aggregate, question_id))


def is_weak(card: CardState) -> bool:
    """Low ease or fewer than two consecutive successes."""
    return card.ease_factor < 2.3 or card.repetitions < 2


def weak_cards(aggregate: ProgressAggregate, ids: Iterable[str]) -> list[str]:
    """Reviewed questions that need extra practice, in the order given.

    Never-reviewed questions are "new", not weak, and are excluded.
    """
    result = []
    for qid in ids:
        card = aggregate.card_progress.get(qid)
        if card is not None and card.reviewed and is_weak(card):
            result.append(qid)
    return result
