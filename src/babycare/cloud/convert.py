"""
Convert cloud JSON replies into the same result types local analysis builds.

Anything missing, mistyped or out of vocabulary raises CloudResponseError,
which the orchestrator treats like any other cloud failure.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from babycare.analysis.prediction import (
    NextActivityPrediction,
    NextFeedingPrediction,
    NextSleepPrediction,
    PredictionResult,
    VALIDITY,
    clamp_window,
)
from babycare.analysis.records import ActivityType, DateRange
from babycare.analysis.routine import (
    ActivityCategory,
    CategoryDistribution,
    RoutineCycle,
    RoutinePatternResult,
    RoutinePatternType,
    RoutineTrend,
)
from babycare.analysis.sleep_pattern import (
    EnvironmentalFactorImpact,
    SleepPatternResult,
    SleepPatternType,
    SleepTrend,
)
from babycare.analysis.timeofday import clamp
from babycare.cloud.errors import CloudResponseError


def _recommendations(data: Dict[str, Any]) -> list:
    return [str(item) for item in data.get("recommendations") or []]


def sleep_result_from_response(
    data: Dict[str, Any], date_range: DateRange, records_count: int, now: datetime
) -> SleepPatternResult:
    try:
        factors = [
            EnvironmentalFactorImpact(
                factor=str(item["factor"]),
                impact=clamp(float(item["impact"]), -1.0, 1.0),
                confidence=clamp(float(item.get("confidence", 0.5)), 0.0, 1.0),
                sample_size=records_count,
            )
            for item in data.get("environmentalFactors") or []
        ]
        return SleepPatternResult(
            date_range=date_range,
            records_count=records_count,
            analyzed_at=now,
            average_sleep_duration_hours=float(data.get("averageSleepDurationHours", 0.0)),
            sleep_efficiency=clamp(float(data.get("sleepEfficiency", 0.0)), 0.0, 1.0),
            pattern_type=SleepPatternType(data["sleepPatternType"]),
            regularity_score=int(clamp(round(float(data["regularityScore"])), 0, 100)),
            environmental_factors=factors,
            trend=SleepTrend(data.get("sleepTrend", SleepTrend.STABLE.value)),
            confidence_score=clamp(float(data["confidenceScore"]), 0.0, 1.0),
            source="cloud",
            recommendations=_recommendations(data),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise CloudResponseError(f"Malformed sleep analysis reply: {exc!r}") from exc


def _routine_type(data: Dict[str, Any], score: int) -> RoutinePatternType:
    if data.get("routinePatternType"):
        return RoutinePatternType(data["routinePatternType"])
    if score >= 80:
        return RoutinePatternType.HIGHLY_REGULAR
    if score >= 60:
        return RoutinePatternType.MODERATELY_REGULAR
    return RoutinePatternType.IRREGULAR


def routine_result_from_response(
    data: Dict[str, Any],
    date_range: DateRange,
    records_count: int,
    days_observed: int,
    now: datetime,
) -> RoutinePatternResult:
    try:
        score = int(clamp(round(float(data["regularityScore"])), 0, 100))
        cycles = [
            RoutineCycle(
                activity_sequence=tuple(ActivityType(t) for t in item["activities"]),
                occurrences=0,
                average_duration_minutes=float(item.get("averageDurationMinutes", 0.0)),
                frequency_per_day=float(item.get("frequencyPerDay", 0.0)),
                regularity_score=int(clamp(round(float(item.get("regularityScore", score))), 0, 100)),
            )
            for item in data.get("typicalPatterns") or []
        ]
        distribution = [
            CategoryDistribution(
                category=ActivityCategory(item["category"]),
                percentage=clamp(float(item.get("percentage", 0.0)), 0.0, 100.0),
                average_duration_minutes=float(item.get("averageDurationMinutes", 0.0)),
                average_interval_hours=(
                    float(item["averageIntervalHours"])
                    if item.get("averageIntervalHours") is not None else None
                ),
            )
            for item in data.get("activityDistribution") or []
        ]
        return RoutinePatternResult(
            date_range=date_range,
            records_count=records_count,
            days_observed=days_observed,
            analyzed_at=now,
            regularity_score=score,
            pattern_type=_routine_type(data, score),
            cycles=cycles,
            distribution=distribution,
            trend=RoutineTrend(data.get("routineTrend", RoutineTrend.STABLE.value)),
            confidence_score=clamp(float(data["confidenceScore"]), 0.0, 1.0),
            source="cloud",
            recommendations=_recommendations(data),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise CloudResponseError(f"Malformed routine analysis reply: {exc!r}") from exc


def _window(item: Dict[str, Any], now: datetime):
    earliest = now + timedelta(minutes=float(item["earliestStartMinutes"]))
    latest = now + timedelta(minutes=float(item["latestStartMinutes"]))
    return clamp_window(earliest, latest, now)


def _sleep_prediction(item: Optional[Dict[str, Any]], now: datetime) -> Optional[NextSleepPrediction]:
    if not item:
        return None
    earliest, latest = _window(item, now)
    return NextSleepPrediction(
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=float(item["expectedDurationMinutes"]),
        duration_variance_minutes=float(item.get("durationVarianceMinutes", 0.0)),
        confidence=clamp(float(item["confidence"]), 0.0, 1.0),
        predicts_wake_up=bool(item.get("predictsWakeUp", False)),
    )


def _feeding_prediction(item: Optional[Dict[str, Any]], now: datetime) -> Optional[NextFeedingPrediction]:
    if not item:
        return None
    earliest, latest = _window(item, now)
    return NextFeedingPrediction(
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=float(item["expectedDurationMinutes"]),
        confidence=clamp(float(item["confidence"]), 0.0, 1.0),
    )


def _activity_prediction(item: Optional[Dict[str, Any]], now: datetime) -> Optional[NextActivityPrediction]:
    if not item:
        return None
    earliest, latest = _window(item, now)
    return NextActivityPrediction(
        activity_type=ActivityType(item["activityType"]),
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=float(item["expectedDurationMinutes"]),
        confidence=clamp(float(item["confidence"]), 0.0, 1.0),
    )


def prediction_result_from_response(
    data: Dict[str, Any],
    subject_id: str,
    records_count: int,
    days_count: int,
    now: datetime,
) -> PredictionResult:
    """Windows in the reply are minutes after `now` (the request's referenceTime)."""
    try:
        return PredictionResult(
            subject_id=subject_id,
            prediction_timestamp=now,
            valid_until=now + VALIDITY,
            confidence_score=clamp(float(data["confidenceScore"]), 0.0, 1.0),
            next_sleep=_sleep_prediction(data.get("nextSleep"), now),
            next_feeding=_feeding_prediction(data.get("nextFeeding"), now),
            next_activity=_activity_prediction(data.get("nextActivity"), now),
            based_on_records_count=records_count,
            based_on_days_count=days_count,
            based_on_pattern_type=SleepPatternType(
                data.get("patternType", SleepPatternType.INSUFFICIENT.value)
            ).value,
            source="cloud",
            recommendations=_recommendations(data),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise CloudResponseError(f"Malformed prediction reply: {exc!r}") from exc
