"""SQLModel engine singleton."""
from typing import Optional

from sqlmodel import SQLModel, create_engine

from babycare.config import get_settings

_engine = None


def get_engine(database_url: Optional[str] = None):
    """Return the module-level engine, creating it (and its tables) on first call."""
    global _engine
    if _engine is None:
        url = database_url or get_settings().database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, connect_args=connect_args)
        # Import the tables so metadata is populated before create_all
        from babycare.models.records import ActivityLog, FeedingLog, SleepLog  # noqa
        SQLModel.metadata.create_all(_engine)
    return _engine
