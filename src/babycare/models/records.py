"""Logged care records: sleep, feeding and generic activities."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SleepLog(SQLModel, table=True):
    """One sleep interval, night or nap."""

    __tablename__ = "sleep_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: str = Field(index=True)
    start_time: datetime = Field(index=True)
    end_time: datetime

    # JSON list of {"start_time": iso, "end_time": iso}
    interruptions_json: Optional[str] = None

    light_lux: Optional[float] = None
    noise_db: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None

    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class FeedingLog(SQLModel, table=True):
    """A breast, bottle or solid feed. end_time is empty while in progress."""

    __tablename__ = "feeding_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: str = Field(index=True)
    start_time: datetime = Field(index=True)
    end_time: Optional[datetime] = None
    feeding_type: str = "bottle"  # "breast", "bottle", "solid"
    amount_ml: Optional[float] = None

    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ActivityLog(SQLModel, table=True):
    """Anything else worth tracking: play, bath, diaper, tummy time, ..."""

    __tablename__ = "activity_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: str = Field(index=True)
    activity_type: str = Field(index=True)  # ActivityType value
    start_time: datetime = Field(index=True)
    end_time: Optional[datetime] = None

    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
