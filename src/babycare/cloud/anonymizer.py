"""
Strip identifying data from records before they leave the device.

Subject and record ids become salted SHA-256 digests, free-text notes are
dropped, and only timestamps and numbers go into the payload. The same
salt always maps an id to the same digest, so the service can still tell
records apart without learning anything about them.
"""
import hashlib
from datetime import datetime
from typing import Any, Dict, List, Sequence

from babycare.analysis.records import ActivityRecord, FeedingRecord, SleepRecord


class DataAnonymizer:
    def __init__(self, salt: str):
        self._salt = salt

    def hash_identifier(self, identifier: str) -> str:
        return hashlib.sha256(f"{self._salt}{identifier}".encode("utf-8")).hexdigest()

    def sleep_record(self, record: SleepRecord) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.hash_identifier(record.id),
            "startTime": record.start_time.isoformat(),
            "endTime": record.end_time.isoformat(),
            "durationMinutes": round(record.duration.total_seconds() / 60, 1),
            "interruptions": [
                {"startTime": i.start_time.isoformat(), "endTime": i.end_time.isoformat()}
                for i in record.interruptions
            ],
        }
        if record.environment is not None:
            payload["environment"] = {
                factor: value
                for factor, value in (
                    ("light", record.environment.light),
                    ("noise", record.environment.noise),
                    ("temperature", record.environment.temperature),
                    ("humidity", record.environment.humidity),
                )
                if value is not None
            }
        return payload

    def feeding_record(self, record: FeedingRecord) -> Dict[str, Any]:
        return {
            "id": self.hash_identifier(record.id),
            "startTime": record.start_time.isoformat(),
            "endTime": record.end_time.isoformat() if record.end_time else None,
            "feedingType": record.feeding_type.value,
            "amountMl": record.amount_ml,
        }

    def activity_record(self, record: ActivityRecord) -> Dict[str, Any]:
        return {
            "id": self.hash_identifier(record.id),
            "type": record.activity_type.value,
            "startTime": record.start_time.isoformat(),
            "endTime": record.end_time.isoformat(),
        }

    def payload(
        self,
        subject_id: str,
        reference_time: datetime,
        sleep_records: Sequence[SleepRecord] = (),
        feeding_records: Sequence[FeedingRecord] = (),
        activities: Sequence[ActivityRecord] = (),
    ) -> Dict[str, Any]:
        """Request body for one cloud call. Empty sections are omitted."""
        body: Dict[str, Any] = {
            "subjectHash": self.hash_identifier(subject_id),
            "referenceTime": reference_time.isoformat(),
        }
        sections: List[tuple] = [
            ("sleepRecords", [self.sleep_record(r) for r in sleep_records]),
            ("feedingRecords", [self.feeding_record(r) for r in feeding_records]),
            ("activities", [self.activity_record(r) for r in activities]),
        ]
        for key, items in sections:
            if items:
                body[key] = items
        return body
