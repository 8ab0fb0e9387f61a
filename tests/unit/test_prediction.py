"""Tests for next sleep / feeding / activity prediction."""
from datetime import datetime, timedelta

import pytest

from babycare.analysis.prediction import (
    MIN_WINDOW,
    VALIDITY,
    PredictionEngine,
    PredictionResult,
    _Estimate,
    clamp_window,
    fuse_estimates,
    predict,
    predict_next_activity,
    predict_next_feeding,
)
from babycare.analysis.records import (
    ActivityRecord,
    ActivityType,
    DateRange,
    FeedingRecord,
    SleepRecord,
)
from babycare.analysis.sleep_pattern import (
    SleepPatternResult,
    SleepPatternType,
    analyze_sleep_pattern,
)

BASE = datetime(2024, 3, 1)
SUBJECT = "baby-1"


def _sleep(start: datetime, minutes: float, rid: str = None) -> SleepRecord:
    return SleepRecord(id=rid or start.isoformat(), start_time=start,
                       end_time=start + timedelta(minutes=minutes))


def _regular_nights(count: int = 30):
    return [
        SleepRecord(
            id=f"n{i}",
            start_time=BASE + timedelta(days=i, hours=20, minutes=(i % 5) - 2),
            end_time=BASE + timedelta(days=i + 1, hours=7, minutes=((i * 3) % 5) - 2),
        )
        for i in range(count)
    ]


def _pattern(records, now):
    return analyze_sleep_pattern(records, DateRange.trailing(14, now), now=now)


def _predict_sleep(records, now):
    return predict(SUBJECT, records, [], [], _pattern(records, now), now)


def _bare_pattern(pattern_type=SleepPatternType.EVOLVING, regularity=0, confidence=0.5):
    now = BASE
    return SleepPatternResult(
        date_range=DateRange(now, now), records_count=0, analyzed_at=now,
        pattern_type=pattern_type, regularity_score=regularity, confidence_score=confidence,
    )


# ─── Gate ──────────────────────────────────────────────────────────────────────

class TestInsufficientHistory:
    def test_too_few_records(self):
        now = BASE + timedelta(days=10)
        result = _predict_sleep(_regular_nights(6), now)

        assert result.confidence_score == 0
        assert result.next_sleep is None
        assert result.next_feeding is None
        assert result.next_activity is None
        assert result.valid_until == now + VALIDITY
        assert result.based_on_pattern_type == SleepPatternType.INSUFFICIENT.value

    def test_too_few_days(self):
        # Seven naps, but only on two days
        records = [_sleep(BASE + timedelta(days=i % 2, hours=9 + i), 30) for i in range(7)]
        result = _predict_sleep(records, BASE + timedelta(days=3))
        assert result.next_sleep is None
        assert result.based_on_days_count == 2

    def test_counts_every_record_kind(self):
        now = BASE + timedelta(days=10)
        feeds = [FeedingRecord(id=f"f{i}", start_time=BASE + timedelta(hours=3 * i)) for i in range(4)]
        result = predict(SUBJECT, _regular_nights(2), feeds, [], _bare_pattern(), now)
        assert result.based_on_records_count == 6


# ─── Next sleep ────────────────────────────────────────────────────────────────

class TestNextSleep:
    @pytest.fixture
    def now(self):
        # Midday after the last of 30 regular nights
        return BASE + timedelta(days=30, hours=12)

    @pytest.fixture
    def result(self, now) -> PredictionResult:
        return _predict_sleep(_regular_nights(30), now)

    def test_window_around_usual_bedtime(self, result, now):
        sleep = result.next_sleep
        bedtime = now.replace(hour=20, minute=0)
        assert not sleep.predicts_wake_up
        assert bedtime - timedelta(minutes=45) <= sleep.earliest_start <= bedtime
        assert bedtime <= sleep.latest_start <= bedtime + timedelta(minutes=45)

    def test_window_in_future_and_wide_enough(self, result, now):
        sleep = result.next_sleep
        assert sleep.earliest_start >= now
        assert sleep.latest_start - sleep.earliest_start >= MIN_WINDOW

    def test_expected_duration(self, result):
        assert result.next_sleep.expected_duration_minutes == pytest.approx(660, abs=5)

    def test_confidences_in_range(self, result):
        assert 0 < result.next_sleep.confidence <= 1
        assert 0 < result.confidence_score <= 1

    def test_pattern_recorded(self, result):
        assert result.based_on_pattern_type == SleepPatternType.HIGHLY_REGULAR.value
        assert result.source == "local"

    def test_overall_renormalized_over_present_parts(self, now):
        records = _regular_nights(30)
        pattern = _pattern(records, now)
        result = predict(SUBJECT, records, [], [], pattern, now)
        expected = (result.next_sleep.confidence * 0.5 + pattern.confidence_score * 0.1) / 0.6
        assert result.confidence_score == pytest.approx(expected)

    def test_stale_history_still_predicts_future(self):
        now = BASE + timedelta(days=33, hours=3)
        result = _predict_sleep(_regular_nights(30), now)
        assert result.next_sleep.earliest_start >= now
        assert result.next_sleep.latest_start - result.next_sleep.earliest_start >= MIN_WINDOW

    def test_valid_for_twelve_hours(self, result, now):
        assert result.valid_until == now + timedelta(hours=12)
        assert not result.is_stale(now)
        assert result.is_stale(now + timedelta(hours=12))


class TestWakeUpPrediction:
    def test_overdue_nap(self):
        now = BASE + timedelta(days=8, hours=16)
        records = [_sleep(BASE + timedelta(days=d, hours=13), 120) for d in range(8)]
        # Asleep since 13:00, logged end still in the future
        records.append(_sleep(now - timedelta(hours=3), 240, rid="current"))

        sleep = _predict_sleep(records, now).next_sleep

        assert sleep.predicts_wake_up
        assert sleep.earliest_start == now
        assert sleep.latest_start == now + timedelta(minutes=15)
        assert sleep.confidence == pytest.approx(0.7)

    def test_scaled_remaining_time(self):
        now = BASE + timedelta(days=9, hours=20, minutes=30)
        records = [_sleep(BASE + timedelta(days=d, hours=20), 600) for d in range(10)]

        sleep = _predict_sleep(records, now).next_sleep

        # 10h average, 30 min elapsed: 9.5h left, window 80%..120%
        assert sleep.predicts_wake_up
        assert sleep.earliest_start == now + timedelta(hours=7.6)
        assert sleep.latest_start == now + timedelta(hours=11.4)
        assert sleep.expected_duration_minutes == pytest.approx(600)
        assert 0 < sleep.confidence <= 0.9


# ─── Fusion ────────────────────────────────────────────────────────────────────

class TestFuseEstimates:
    NOW = datetime(2024, 3, 10, 12, 0)

    def _estimate(self, start_h: float, end_h: float, confidence: float) -> _Estimate:
        return _Estimate(
            earliest=self.NOW + timedelta(hours=start_h),
            latest=self.NOW + timedelta(hours=end_h),
            duration_minutes=60.0,
            variance_minutes=10.0,
            confidence=confidence,
        )

    def test_nothing_to_fuse(self):
        assert fuse_estimates([None, None, None], _bare_pattern(), self.NOW) is None

    def test_zero_weight_falls_back_to_best_estimate(self):
        # Zero regularity removes all time-of-day weight
        only_time_of_day = self._estimate(1, 2, 0.5)
        fused = fuse_estimates([None, only_time_of_day, None], _bare_pattern(regularity=0), self.NOW)

        assert fused.earliest_start == self.NOW + timedelta(hours=1)
        assert fused.latest_start == self.NOW + timedelta(hours=2)
        assert fused.confidence == pytest.approx(0.5)

    def test_agreeing_estimates(self):
        estimates = [self._estimate(2, 3, 0.6), self._estimate(2, 3, 0.8), self._estimate(2, 3, 0.4)]
        fused = fuse_estimates(estimates, _bare_pattern(SleepPatternType.HIGHLY_REGULAR, 100), self.NOW)
        assert fused.earliest_start == self.NOW + timedelta(hours=2)
        assert fused.latest_start == self.NOW + timedelta(hours=3)
        # weights (0.2, 0.5, 0.3)
        assert fused.confidence == pytest.approx(0.2 * 0.6 + 0.5 * 0.8 + 0.3 * 0.4)

    def test_window_stays_in_future(self):
        estimates = [self._estimate(-3, -2, 0.8), None, None]
        fused = fuse_estimates(estimates, _bare_pattern(), self.NOW)
        assert fused.earliest_start >= self.NOW
        assert fused.latest_start - fused.earliest_start >= MIN_WINDOW


class TestClampWindow:
    NOW = datetime(2024, 3, 10, 12, 0)

    def test_past_start_moved_to_now(self):
        earliest, latest = clamp_window(self.NOW - timedelta(hours=1), self.NOW + timedelta(hours=1), self.NOW)
        assert earliest == self.NOW
        assert latest == self.NOW + timedelta(hours=1)

    def test_narrow_window_widened(self):
        start = self.NOW + timedelta(hours=1)
        earliest, latest = clamp_window(start, start + timedelta(minutes=5), self.NOW)
        assert latest - earliest == MIN_WINDOW

    def test_inverted_window_repaired(self):
        start = self.NOW + timedelta(hours=1)
        earliest, latest = clamp_window(start, start - timedelta(minutes=20), self.NOW)
        assert earliest == start
        assert latest == start + MIN_WINDOW


# ─── Feeding & activity ────────────────────────────────────────────────────────

class TestNextFeeding:
    def _feeds(self, count=40, closed=True):
        return [
            FeedingRecord(
                id=f"f{i}",
                start_time=BASE + timedelta(hours=3 * i),
                end_time=BASE + timedelta(hours=3 * i, minutes=20) if closed else None,
            )
            for i in range(count)
        ]

    def test_every_three_hours(self):
        feeds = self._feeds()
        last = feeds[-1].start_time
        prediction = predict_next_feeding(feeds, last + timedelta(hours=1))

        assert prediction.earliest_start == last + timedelta(hours=2, minutes=45)
        assert prediction.latest_start == last + timedelta(hours=3, minutes=15)
        assert prediction.expected_duration_minutes == pytest.approx(20)
        assert prediction.confidence == pytest.approx(0.8)

    def test_open_feeds_default_duration(self):
        feeds = self._feeds(closed=False)
        prediction = predict_next_feeding(feeds, feeds[-1].start_time + timedelta(hours=1))
        assert prediction.expected_duration_minutes == pytest.approx(20)

    def test_too_few_feeds(self):
        feeds = self._feeds(count=6)
        assert predict_next_feeding(feeds, feeds[-1].start_time) is None

    def test_only_long_gaps(self):
        feeds = [FeedingRecord(id=f"f{i}", start_time=BASE + timedelta(hours=13 * i)) for i in range(8)]
        assert predict_next_feeding(feeds, BASE + timedelta(days=5)) is None


class TestNextActivity:
    def _activity(self, activity_type, start, minutes=30):
        return ActivityRecord(id=f"{activity_type.value}-{start.isoformat()}", activity_type=activity_type,
                              start_time=start, end_time=start + timedelta(minutes=minutes))

    def test_most_common_type(self):
        activities = []
        for d in range(4):
            day = BASE + timedelta(days=d)
            activities += [
                self._activity(ActivityType.PLAY, day + timedelta(hours=10)),
                self._activity(ActivityType.PLAY, day + timedelta(hours=16)),
            ]
        activities.append(self._activity(ActivityType.BATH, BASE + timedelta(hours=19)))
        now = BASE + timedelta(days=3, hours=17)

        prediction = predict_next_activity(activities, now)

        assert prediction.activity_type == ActivityType.PLAY
        assert prediction.earliest_start >= now
        assert prediction.expected_duration_minutes == pytest.approx(30)

    def test_no_dominant_type(self):
        types = [ActivityType.PLAY, ActivityType.BATH, ActivityType.DIAPER, ActivityType.TUMMY_TIME,
                 ActivityType.OUTDOORS, ActivityType.MEDICATION, ActivityType.OTHER]
        activities = [self._activity(t, BASE + timedelta(hours=2 * i)) for i, t in enumerate(types)]
        assert predict_next_activity(activities, BASE + timedelta(days=1)) is None


# ─── Engine over a store ───────────────────────────────────────────────────────

class TestPredictionEngine:
    def test_reads_trailing_window(self, memory_store):
        memory_store.add_sleep(SUBJECT, *_regular_nights(30))
        now = BASE + timedelta(days=30, hours=12)

        result = PredictionEngine(memory_store).predict_next_sleep(SUBJECT, now=now)

        # Only the last 14 days of history are used
        assert result.based_on_records_count == 14
        assert result.next_sleep is not None
        assert result.subject_id == SUBJECT

    def test_unknown_subject_is_insufficient(self, memory_store):
        result = PredictionEngine(memory_store).predict_next_sleep("nobody", now=BASE)
        assert result.next_sleep is None
        assert result.confidence_score == 0

    def test_store_errors_propagate(self):
        class BrokenStore:
            def get_sleep_records(self, subject_id, date_range):
                raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            PredictionEngine(BrokenStore()).predict_next_sleep(SUBJECT, now=BASE)
