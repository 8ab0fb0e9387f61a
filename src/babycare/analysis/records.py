"""
Immutable record types shared by every analysis module.

These are plain Python dataclasses: no SQLModel, no DB dependencies.
The record store converts its rows into these before handing them to the
analyzers, and the analyzers never mutate them.

All timestamps are naive datetimes in the subject's local time, so calendar
days and the day/night split line up with what the parent logged.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple


class ActivityType(str, Enum):
    SLEEP = "sleep"
    FEEDING = "feeding"
    DIAPER = "diaper"
    BATH = "bath"
    PLAY = "play"
    TUMMY_TIME = "tummy_time"
    OUTDOORS = "outdoors"
    MEDICATION = "medication"
    OTHER = "other"


class FeedingType(str, Enum):
    BREAST = "breast"
    BOTTLE = "bottle"
    SOLID = "solid"


# Durations assumed for records logged without an end time
DEFAULT_FEEDING_DURATION = timedelta(minutes=20)
DEFAULT_ACTIVITY_DURATION = timedelta(minutes=30)


def _check_interval(start: datetime, end: datetime, what: str) -> None:
    if end < start:
        raise ValueError(f"{what} ends before it starts ({end} < {start})")


@dataclass(frozen=True)
class DateRange:
    """Closed interval [start, end] of local time."""

    start: datetime
    end: datetime

    def __post_init__(self):
        _check_interval(self.start, self.end, "DateRange")

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @classmethod
    def trailing(cls, days: int, now: Optional[datetime] = None) -> "DateRange":
        """The `days`-long window ending at `now`."""
        end = now or datetime.now()
        return cls(start=end - timedelta(days=days), end=end)


@dataclass(frozen=True)
class Interruption:
    """A waking inside a sleep interval."""

    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        _check_interval(self.start_time, self.end_time, "Interruption")

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class EnvironmentalReadings:
    """Optional room readings captured with a sleep record."""

    light: Optional[float] = None        # lux
    noise: Optional[float] = None        # dB
    temperature: Optional[float] = None  # Celsius
    humidity: Optional[float] = None     # % relative

    def value_for(self, factor: str) -> Optional[float]:
        return getattr(self, factor, None)


@dataclass(frozen=True)
class SleepRecord:
    id: str
    start_time: datetime
    end_time: datetime
    interruptions: Tuple[Interruption, ...] = ()
    environment: Optional[EnvironmentalReadings] = None
    notes: Optional[str] = None

    def __post_init__(self):
        _check_interval(self.start_time, self.end_time, "SleepRecord")
        # Accept any sequence but store a tuple so the record stays hashable
        object.__setattr__(self, "interruptions", tuple(self.interruptions))

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class FeedingRecord:
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None  # open-ended while a feed is in progress
    feeding_type: FeedingType = FeedingType.BOTTLE
    amount_ml: Optional[float] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if self.end_time is not None:
            _check_interval(self.start_time, self.end_time, "FeedingRecord")

    @property
    def effective_end(self) -> datetime:
        return self.end_time or self.start_time + DEFAULT_FEEDING_DURATION


@dataclass(frozen=True)
class ActivityRecord:
    id: str
    activity_type: ActivityType
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None

    def __post_init__(self):
        _check_interval(self.start_time, self.end_time, "ActivityRecord")

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


def to_routine_activities(
    sleep_records: Sequence[SleepRecord],
    feeding_records: Sequence[FeedingRecord],
    activities: Sequence[ActivityRecord],
) -> List[ActivityRecord]:
    """
    Merge the three record kinds into one chronological ActivityRecord list.

    This is the bridge between the record store (which keeps sleep and
    feeding history in their own shapes) and the routine analyzer, which
    only cares about type and interval.
    """
    merged: List[ActivityRecord] = list(activities)
    merged.extend(
        ActivityRecord(
            id=r.id,
            activity_type=ActivityType.SLEEP,
            start_time=r.start_time,
            end_time=r.end_time,
        )
        for r in sleep_records
    )
    merged.extend(
        ActivityRecord(
            id=r.id,
            activity_type=ActivityType.FEEDING,
            start_time=r.start_time,
            end_time=r.effective_end,
        )
        for r in feeding_records
    )
    return sorted(merged, key=lambda a: (a.start_time, a.id))

