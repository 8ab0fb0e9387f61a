"""
SQLModel-backed record store.

Rows are converted to the immutable analysis records on the way out, so
nothing above this module ever sees a Session or a table class.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from babycare.analysis.records import (
    DEFAULT_ACTIVITY_DURATION,
    ActivityRecord,
    ActivityType,
    DateRange,
    EnvironmentalReadings,
    FeedingRecord,
    FeedingType,
    Interruption,
    SleepRecord,
)
from babycare.models.records import ActivityLog, FeedingLog, SleepLog
from babycare.store.base import RecordStoreError

logger = logging.getLogger(__name__)


# ─── Row conversion ────────────────────────────────────────────────────────────

def _interruptions_from_json(raw: Optional[str]) -> List[Interruption]:
    if not raw:
        return []
    return [
        Interruption(
            start_time=datetime.fromisoformat(item["start_time"]),
            end_time=datetime.fromisoformat(item["end_time"]),
        )
        for item in json.loads(raw)
    ]


def _interruptions_to_json(interruptions) -> Optional[str]:
    if not interruptions:
        return None
    return json.dumps([
        {"start_time": i.start_time.isoformat(), "end_time": i.end_time.isoformat()}
        for i in interruptions
    ])


def sleep_row_to_record(row: SleepLog) -> SleepRecord:
    readings = (row.light_lux, row.noise_db, row.temperature_c, row.humidity_pct)
    environment = None
    if any(value is not None for value in readings):
        environment = EnvironmentalReadings(
            light=row.light_lux,
            noise=row.noise_db,
            temperature=row.temperature_c,
            humidity=row.humidity_pct,
        )
    return SleepRecord(
        id=str(row.id),
        start_time=row.start_time,
        end_time=row.end_time,
        interruptions=_interruptions_from_json(row.interruptions_json),
        environment=environment,
        notes=row.notes,
    )


def feeding_row_to_record(row: FeedingLog) -> FeedingRecord:
    return FeedingRecord(
        id=str(row.id),
        start_time=row.start_time,
        end_time=row.end_time,
        feeding_type=FeedingType(row.feeding_type),
        amount_ml=row.amount_ml,
        notes=row.notes,
    )


def activity_row_to_record(row: ActivityLog) -> ActivityRecord:
    return ActivityRecord(
        id=str(row.id),
        activity_type=ActivityType(row.activity_type),
        start_time=row.start_time,
        end_time=row.end_time or row.start_time + DEFAULT_ACTIVITY_DURATION,
        notes=row.notes,
    )


# ─── Store ─────────────────────────────────────────────────────────────────────

class SqlRecordStore:
    """
    RecordStore over the sleep_log / feeding_log / activity_log tables.

    Usage:
        store = SqlRecordStore(engine=get_engine())
        records = store.get_sleep_records("baby-1", DateRange.trailing(14))
    """

    def __init__(self, engine):
        self.engine = engine

    def _load(self, table, converter, subject_id: str, date_range: DateRange) -> list:
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(table)
                    .where(table.subject_id == subject_id)
                    .where(table.start_time >= date_range.start)
                    .where(table.start_time <= date_range.end)
                    .order_by(table.start_time)
                ).all()
                logger.debug("Loaded %d %s rows for %s", len(rows), table.__tablename__, subject_id)
                return [converter(row) for row in rows]
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Could not read {table.__tablename__}: {exc}") from exc
        except (KeyError, ValueError) as exc:
            # Bad enum value, malformed interruption JSON, end before start
            raise RecordStoreError(f"Corrupt row in {table.__tablename__}: {exc}") from exc

    def get_sleep_records(self, subject_id: str, date_range: DateRange) -> List[SleepRecord]:
        return self._load(SleepLog, sleep_row_to_record, subject_id, date_range)

    def get_feeding_records(self, subject_id: str, date_range: DateRange) -> List[FeedingRecord]:
        return self._load(FeedingLog, feeding_row_to_record, subject_id, date_range)

    def get_activities(self, subject_id: str, date_range: DateRange) -> List[ActivityRecord]:
        return self._load(ActivityLog, activity_row_to_record, subject_id, date_range)

    # ── Writes (seeding and tests) ────────────────────────────────────────────

    def _save(self, row):
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return row
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Could not write {type(row).__tablename__}: {exc}") from exc

    def add_sleep(self, subject_id: str, record: SleepRecord) -> SleepLog:
        env = record.environment or EnvironmentalReadings()
        return self._save(SleepLog(
            subject_id=subject_id,
            start_time=record.start_time,
            end_time=record.end_time,
            interruptions_json=_interruptions_to_json(record.interruptions),
            light_lux=env.light,
            noise_db=env.noise,
            temperature_c=env.temperature,
            humidity_pct=env.humidity,
            notes=record.notes,
        ))

    def add_feeding(self, subject_id: str, record: FeedingRecord) -> FeedingLog:
        return self._save(FeedingLog(
            subject_id=subject_id,
            start_time=record.start_time,
            end_time=record.end_time,
            feeding_type=record.feeding_type.value,
            amount_ml=record.amount_ml,
            notes=record.notes,
        ))

    def add_activity(self, subject_id: str, record: ActivityRecord) -> ActivityLog:
        return self._save(ActivityLog(
            subject_id=subject_id,
            activity_type=record.activity_type.value,
            start_time=record.start_time,
            end_time=record.end_time,
            notes=record.notes,
        ))
