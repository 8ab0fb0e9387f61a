"""
Record store interface and its in-memory implementation.

The analyzers only ever read history. Anything that can answer the three
read accessors below can back them: the SQL store in production, or
InMemoryRecordStore in tests and one-off scripts.
"""
from collections import defaultdict
from typing import Dict, List, Protocol

from babycare.analysis.records import ActivityRecord, DateRange, FeedingRecord, SleepRecord


class RecordStoreError(RuntimeError):
    """Raised when records cannot be read (database down, corrupt row, ...)."""


class RecordStore(Protocol):
    def get_sleep_records(self, subject_id: str, date_range: DateRange) -> List[SleepRecord]:
        ...

    def get_feeding_records(self, subject_id: str, date_range: DateRange) -> List[FeedingRecord]:
        ...

    def get_activities(self, subject_id: str, date_range: DateRange) -> List[ActivityRecord]:
        ...


class InMemoryRecordStore:
    """Dict-backed RecordStore. Records are returned sorted by start time."""

    def __init__(self):
        self._sleep: Dict[str, List[SleepRecord]] = defaultdict(list)
        self._feeding: Dict[str, List[FeedingRecord]] = defaultdict(list)
        self._activities: Dict[str, List[ActivityRecord]] = defaultdict(list)

    def add_sleep(self, subject_id: str, *records: SleepRecord) -> None:
        self._sleep[subject_id].extend(records)

    def add_feeding(self, subject_id: str, *records: FeedingRecord) -> None:
        self._feeding[subject_id].extend(records)

    def add_activity(self, subject_id: str, *records: ActivityRecord) -> None:
        self._activities[subject_id].extend(records)

    def get_sleep_records(self, subject_id: str, date_range: DateRange) -> List[SleepRecord]:
        return _in_range(self._sleep.get(subject_id, []), date_range)

    def get_feeding_records(self, subject_id: str, date_range: DateRange) -> List[FeedingRecord]:
        return _in_range(self._feeding.get(subject_id, []), date_range)

    def get_activities(self, subject_id: str, date_range: DateRange) -> List[ActivityRecord]:
        return _in_range(self._activities.get(subject_id, []), date_range)


def _in_range(records, date_range: DateRange) -> list:
    return sorted(
        (r for r in records if date_range.contains(r.start_time)),
        key=lambda r: r.start_time,
    )
