"""Question catalog: the ``{id, topic}`` pairs the scheduling core works over.

Question text, options and answers belong to the content layer; only the
identifier and topic label are needed here.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, TypeAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionRef:
    id: str
    topic: str = ""


class _QuestionEntry(BaseModel):
    id: str
    topic: str | None = ""


_ENTRIES = TypeAdapter(list[_QuestionEntry])


def load_catalog(path: Path) -> list[QuestionRef]:
    """Load a JSON list of ``{"id": ..., "topic": ...}`` objects.

    Extra keys (question text, options) are ignored.
    """
    entries = _ENTRIES.validate_python(json.loads(path.read_text(encoding="utf-8")))
    catalog = [QuestionRef(id=e.id, topic=e.topic or "") for e in entries]
    logger.info("Loaded %d questions from %s", len(catalog), path)
    return catalog


def topics(catalog: list[QuestionRef]) -> list[str]:
    """Distinct non-empty topics in first-seen order."""
    return list(dict.fromkeys(q.topic for q in catalog if q.topic))
