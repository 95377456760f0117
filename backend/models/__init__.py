"""SQLAlchemy ORM models for the local and remote progress stores."""

from backend.models.base import Base
from backend.models.local_entry import LocalEntry
from backend.models.user_progress import UserProgress

__all__ = ["Base", "LocalEntry", "UserProgress"]
