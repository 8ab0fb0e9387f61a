"""Integration tests for SqlRecordStore against in-memory SQLite."""
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel

from babycare.analysis.records import (
    ActivityRecord,
    ActivityType,
    DateRange,
    EnvironmentalReadings,
    FeedingRecord,
    FeedingType,
    Interruption,
    SleepRecord,
)
from babycare.models.records import ActivityLog, SleepLog
from babycare.store.base import RecordStoreError
from babycare.store.sql import SqlRecordStore

T0 = datetime(2024, 3, 1, 20, 0)
MARCH = DateRange(datetime(2024, 3, 1), datetime(2024, 3, 31))


@pytest.fixture(name="store")
def store_fixture(engine):
    return SqlRecordStore(engine)


class TestSleep:
    def test_roundtrip(self, store):
        record = SleepRecord(
            id="ignored",
            start_time=T0,
            end_time=T0 + timedelta(hours=10),
            interruptions=[Interruption(T0 + timedelta(hours=2), T0 + timedelta(hours=2, minutes=15))],
            environment=EnvironmentalReadings(light=1.5, noise=35.0),
            notes="white noise on",
        )
        row = store.add_sleep("baby-1", record)

        [loaded] = store.get_sleep_records("baby-1", MARCH)

        assert loaded.id == str(row.id)
        assert loaded.start_time == T0
        assert loaded.end_time == T0 + timedelta(hours=10)
        assert loaded.interruptions == record.interruptions
        assert loaded.environment == EnvironmentalReadings(light=1.5, noise=35.0)
        assert loaded.notes == "white noise on"

    def test_no_readings_means_no_environment(self, store):
        store.add_sleep("baby-1", SleepRecord(id="x", start_time=T0, end_time=T0 + timedelta(hours=1)))
        [loaded] = store.get_sleep_records("baby-1", MARCH)
        assert loaded.environment is None
        assert loaded.interruptions == ()

    def test_filters_by_subject_and_range(self, store):
        for day in range(5):
            start = T0 + timedelta(days=day)
            store.add_sleep("baby-1", SleepRecord(id="x", start_time=start, end_time=start + timedelta(hours=9)))
        store.add_sleep("baby-2", SleepRecord(id="y", start_time=T0, end_time=T0 + timedelta(hours=9)))

        window = DateRange(T0 + timedelta(days=1), T0 + timedelta(days=3))
        loaded = store.get_sleep_records("baby-1", window)

        assert [r.start_time for r in loaded] == [T0 + timedelta(days=d) for d in (1, 2, 3)]

    def test_sorted_by_start(self, store):
        for hours in (5, 1, 3):
            start = T0 + timedelta(hours=hours)
            store.add_sleep("baby-1", SleepRecord(id="x", start_time=start, end_time=start + timedelta(minutes=30)))
        loaded = store.get_sleep_records("baby-1", MARCH)
        assert [r.start_time for r in loaded] == sorted(r.start_time for r in loaded)


class TestFeedingAndActivities:
    def test_open_feed_stays_open(self, store):
        store.add_feeding("baby-1", FeedingRecord(id="f", start_time=T0, feeding_type=FeedingType.BREAST))
        [loaded] = store.get_feeding_records("baby-1", MARCH)
        assert loaded.end_time is None
        assert loaded.feeding_type == FeedingType.BREAST
        assert loaded.effective_end == T0 + timedelta(minutes=20)

    def test_open_activity_gets_default_duration(self, engine, store):
        with Session(engine) as session:
            session.add(ActivityLog(subject_id="baby-1", activity_type="bath", start_time=T0))
            session.commit()

        [loaded] = store.get_activities("baby-1", MARCH)

        assert loaded.activity_type == ActivityType.BATH
        assert loaded.end_time == T0 + timedelta(minutes=30)

    def test_activity_roundtrip(self, store):
        store.add_activity("baby-1", ActivityRecord(
            id="a", activity_type=ActivityType.TUMMY_TIME,
            start_time=T0, end_time=T0 + timedelta(minutes=10),
        ))
        [loaded] = store.get_activities("baby-1", MARCH)
        assert loaded.activity_type == ActivityType.TUMMY_TIME
        assert loaded.duration == timedelta(minutes=10)


class TestErrors:
    def test_unknown_activity_type(self, engine, store):
        with Session(engine) as session:
            session.add(ActivityLog(subject_id="baby-1", activity_type="juggling", start_time=T0))
            session.commit()

        with pytest.raises(RecordStoreError):
            store.get_activities("baby-1", MARCH)

    def test_row_ending_before_start(self, engine, store):
        with Session(engine) as session:
            session.add(SleepLog(subject_id="baby-1", start_time=T0, end_time=T0 - timedelta(hours=1)))
            session.commit()

        with pytest.raises(RecordStoreError):
            store.get_sleep_records("baby-1", MARCH)

    def test_missing_tables(self, engine, store):
        SQLModel.metadata.drop_all(engine)

        with pytest.raises(RecordStoreError):
            store.get_sleep_records("baby-1", MARCH)
