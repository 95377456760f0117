from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info)
    and round-trip exactly through the persisted snapshot.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Quizly"
    local_database_url: str = f"sqlite+aiosqlite:///{DATA_DIR / 'quizly_local.db'}"
    fallback_store_path: Path = DATA_DIR / "quizly_fallback.json"
    progress_key: str = "quiz-app-progress"

    # Remote store: SQL (remote_database_url) or REST (remote_rest_url), both optional
    remote_database_url: str = ""
    remote_rest_url: str = ""
    remote_api_key: str = ""
    remote_table: str = "user_progress"
    remote_timeout_seconds: float = 5.0

    debug: bool = False

    model_config = {"env_prefix": "QUIZLY_", "env_file": ".env"}


settings = Settings()
