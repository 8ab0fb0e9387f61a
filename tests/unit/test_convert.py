"""Tests for turning cloud JSON replies into result objects."""
from datetime import datetime, timedelta

import pytest

from babycare.analysis.records import ActivityType, DateRange
from babycare.analysis.routine import ActivityCategory, RoutinePatternType, RoutineTrend
from babycare.analysis.sleep_pattern import SleepPatternType, SleepTrend
from babycare.cloud.convert import (
    prediction_result_from_response,
    routine_result_from_response,
    sleep_result_from_response,
)
from babycare.cloud.errors import CloudResponseError

NOW = datetime(2024, 3, 20, 12, 0)
RANGE = DateRange(NOW - timedelta(days=14), NOW)


class TestSleepReply:
    def test_full_reply(self):
        data = {
            "sleepPatternType": "moderately_regular",
            "regularityScore": 72.6,
            "averageSleepDurationHours": 10.5,
            "sleepEfficiency": 0.93,
            "environmentalFactors": [{"factor": "noise", "impact": -1.4, "confidence": 0.6}],
            "sleepTrend": "improving",
            "recommendations": ["Keep bedtime consistent"],
            "confidenceScore": 0.8,
        }
        result = sleep_result_from_response(data, RANGE, 20, NOW)

        assert result.source == "cloud"
        assert result.pattern_type == SleepPatternType.MODERATELY_REGULAR
        assert result.regularity_score == 73
        assert result.trend == SleepTrend.IMPROVING
        assert result.environmental_factors[0].impact == -1.0
        assert result.records_count == 20
        assert result.recommendations == ["Keep bedtime consistent"]

    def test_missing_required_field(self):
        with pytest.raises(CloudResponseError):
            sleep_result_from_response({"regularityScore": 50, "confidenceScore": 0.5}, RANGE, 5, NOW)

    def test_unknown_pattern_type(self):
        data = {"sleepPatternType": "chaotic", "regularityScore": 10, "confidenceScore": 0.2}
        with pytest.raises(CloudResponseError):
            sleep_result_from_response(data, RANGE, 5, NOW)

    def test_scores_clamped(self):
        data = {"sleepPatternType": "irregular", "regularityScore": 140, "confidenceScore": 3}
        result = sleep_result_from_response(data, RANGE, 5, NOW)
        assert result.regularity_score == 100
        assert result.confidence_score == 1.0


class TestRoutineReply:
    def test_full_reply(self):
        data = {
            "routinePatternType": "highly_regular",
            "regularityScore": 88,
            "typicalPatterns": [{
                "activities": ["feeding", "play", "sleep"],
                "averageDurationMinutes": 180,
                "frequencyPerDay": 2,
                "regularityScore": 90,
            }],
            "activityDistribution": [
                {"category": "sleep", "percentage": 55, "averageDurationMinutes": 95,
                 "averageIntervalHours": 3.2},
                {"category": "play", "percentage": 20, "averageDurationMinutes": 40},
            ],
            "routineTrend": "stable",
            "confidenceScore": 0.7,
        }
        result = routine_result_from_response(data, RANGE, 49, 7, NOW)

        assert result.source == "cloud"
        assert result.pattern_type == RoutinePatternType.HIGHLY_REGULAR
        assert result.cycles[0].activity_sequence == (
            ActivityType.FEEDING, ActivityType.PLAY, ActivityType.SLEEP,
        )
        assert result.distribution[0].category == ActivityCategory.SLEEP
        assert result.distribution[1].average_interval_hours is None
        assert result.trend == RoutineTrend.STABLE
        assert result.days_observed == 7

    def test_pattern_type_derived_from_score(self):
        result = routine_result_from_response(
            {"regularityScore": 65, "confidenceScore": 0.5}, RANGE, 12, 4, NOW
        )
        assert result.pattern_type == RoutinePatternType.MODERATELY_REGULAR

    def test_unknown_activity(self):
        data = {
            "regularityScore": 65,
            "confidenceScore": 0.5,
            "typicalPatterns": [{"activities": ["feeding", "juggling", "sleep"]}],
        }
        with pytest.raises(CloudResponseError):
            routine_result_from_response(data, RANGE, 12, 4, NOW)


class TestPredictionReply:
    def test_windows_relative_to_now(self):
        data = {
            "nextSleep": {
                "earliestStartMinutes": 60, "latestStartMinutes": 120,
                "expectedDurationMinutes": 90, "confidence": 0.7,
            },
            "nextFeeding": {
                "earliestStartMinutes": 30, "latestStartMinutes": 40,
                "expectedDurationMinutes": 20, "confidence": 0.6,
            },
            "nextActivity": {
                "activityType": "bath",
                "earliestStartMinutes": 300, "latestStartMinutes": 360,
                "expectedDurationMinutes": 15, "confidence": 0.4,
            },
            "patternType": "evolving",
            "confidenceScore": 0.65,
        }
        result = prediction_result_from_response(data, "baby-1", 30, 10, NOW)

        assert result.source == "cloud"
        assert result.valid_until == NOW + timedelta(hours=12)
        assert result.next_sleep.earliest_start == NOW + timedelta(hours=1)
        assert result.next_sleep.latest_start == NOW + timedelta(hours=2)
        # 10-minute window widened to the 30-minute minimum
        assert result.next_feeding.latest_start - result.next_feeding.earliest_start == timedelta(minutes=30)
        assert result.next_activity.activity_type == ActivityType.BATH
        assert result.based_on_pattern_type == "evolving"

    def test_past_window_pushed_to_now(self):
        data = {
            "nextSleep": {
                "earliestStartMinutes": -30, "latestStartMinutes": 45,
                "expectedDurationMinutes": 90, "confidence": 0.7,
            },
            "confidenceScore": 0.5,
        }
        result = prediction_result_from_response(data, "baby-1", 30, 10, NOW)
        assert result.next_sleep.earliest_start == NOW
        assert result.next_feeding is None

    def test_malformed_window(self):
        data = {"nextSleep": {"earliestStartMinutes": "soon"}, "confidenceScore": 0.5}
        with pytest.raises(CloudResponseError):
            prediction_result_from_response(data, "baby-1", 30, 10, NOW)

    def test_window_beyond_calendar(self):
        data = {
            "nextSleep": {
                "earliestStartMinutes": 1e12, "latestStartMinutes": 1e12 + 60,
                "expectedDurationMinutes": 90, "confidence": 0.7,
            },
            "confidenceScore": 0.5,
        }
        with pytest.raises(CloudResponseError):
            prediction_result_from_response(data, "baby-1", 30, 10, NOW)


class TestNonFiniteNumbers:
    """json.loads reads 1e999 as inf; such replies are malformed, not crashes."""

    def test_infinite_sleep_score(self):
        data = {"sleepPatternType": "highly_regular", "regularityScore": float("inf"), "confidenceScore": 0.9}
        with pytest.raises(CloudResponseError):
            sleep_result_from_response(data, RANGE, 5, NOW)

    def test_infinite_routine_score(self):
        with pytest.raises(CloudResponseError):
            routine_result_from_response({"regularityScore": float("inf"), "confidenceScore": 0.5}, RANGE, 12, 4, NOW)

    def test_infinite_cycle_score(self):
        data = {
            "regularityScore": 70,
            "confidenceScore": 0.5,
            "typicalPatterns": [{"activities": ["feeding", "play", "sleep"], "regularityScore": float("-inf")}],
        }
        with pytest.raises(CloudResponseError):
            routine_result_from_response(data, RANGE, 12, 4, NOW)
