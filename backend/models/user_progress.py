from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class UserProgress(Base, TimestampMixin):
    """Account-bound progress snapshot, one row per owner."""

    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    progress: Mapped[str] = mapped_column(Text, nullable=False)  # JSON snapshot
