"""
Next sleep / feeding / activity prediction.

Sleep onset is forecast three independent ways and the answers are fused:
  1. Interval:     last wake-up + mean awake gap between sleeps
  2. Time of day:  the next historical fall-asleep time after "now"
  3. Cycle:        last fall-asleep + mean start-to-start spacing

Each estimator yields a window, an expected duration and a confidence.
Fusion weights each estimate by a pattern-dependent base weight times its
confidence. A regular sleeper gets more weight on time of day, an irregular
one on awake intervals, and the time-of-day weight is further scaled by the
sleep regularity score. The fused window is then pushed into the future and
widened to at least 30 minutes.

If the baby is asleep right now (the latest record ends in the future) the
sleep prediction becomes a wake-up prediction instead.

Feeding and activity use the interval estimator alone.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from statistics import mean, pstdev
from typing import List, Optional, Sequence, Tuple

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
from babycare.analysis.timeofday import MINUTES_PER_DAY, clamp, fold_minutes, minutes_of_day

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 14
MIN_RECORDS = 7
MIN_DAYS = 3
VALIDITY = timedelta(hours=12)
MIN_WINDOW = timedelta(minutes=30)

_SLEEP_GAP_CAP = timedelta(hours=24)
_CYCLE_GAP_CAP = timedelta(hours=36)
_FEEDING_GAP_CAP = timedelta(hours=12)
_ACTIVITY_GAP_CAP = timedelta(hours=24)
_TIME_OF_DAY_RADIUS_MINUTES = 120

# (interval, time of day, cycle)
_DEFAULT_WEIGHTS = (0.3, 0.4, 0.3)
_PATTERN_WEIGHTS = {
    SleepPatternType.HIGHLY_REGULAR: (0.2, 0.5, 0.3),
    SleepPatternType.MODERATELY_REGULAR: (0.3, 0.4, 0.3),
    SleepPatternType.IRREGULAR: (0.4, 0.3, 0.3),
    SleepPatternType.EVOLVING: (0.3, 0.3, 0.4),
    SleepPatternType.TRANSITIONING: (0.3, 0.3, 0.4),
}


@dataclass
class NextSleepPrediction:
    earliest_start: datetime
    latest_start: datetime
    expected_duration_minutes: float
    duration_variance_minutes: float
    confidence: float
    predicts_wake_up: bool = False  # window is a wake-up time, not sleep onset


@dataclass
class NextFeedingPrediction:
    earliest_start: datetime
    latest_start: datetime
    expected_duration_minutes: float
    confidence: float


@dataclass
class NextActivityPrediction:
    activity_type: ActivityType
    earliest_start: datetime
    latest_start: datetime
    expected_duration_minutes: float
    confidence: float


@dataclass
class PredictionResult:
    subject_id: str
    prediction_timestamp: datetime
    valid_until: datetime
    confidence_score: float = 0.0
    next_sleep: Optional[NextSleepPrediction] = None
    next_feeding: Optional[NextFeedingPrediction] = None
    next_activity: Optional[NextActivityPrediction] = None
    based_on_records_count: int = 0
    based_on_days_count: int = 0
    based_on_pattern_type: str = SleepPatternType.INSUFFICIENT.value

    source: str = "local"
    recommendations: List[str] = field(default_factory=list)

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True once the prediction has passed valid_until and must be recomputed."""
        return (now or datetime.now()) >= self.valid_until


@dataclass
class _Estimate:
    earliest: datetime
    latest: datetime
    duration_minutes: float
    variance_minutes: float
    confidence: float


# ─── Entry points ──────────────────────────────────────────────────────────────

class PredictionEngine:
    """
    Loads the trailing LOOKBACK_DAYS of history from a record store and
    forecasts the next events for one subject.
    """

    def __init__(self, store, day_start_hour: int = 6, day_end_hour: int = 20,
                 lookback_days: int = LOOKBACK_DAYS):
        self._store = store
        self.day_start_hour = day_start_hour
        self.day_end_hour = day_end_hour
        self.lookback_days = lookback_days

    def predict_next_sleep(self, subject_id: str, now: Optional[datetime] = None) -> PredictionResult:
        """Predict next sleep, feeding and activity. Store errors propagate."""
        now = now or datetime.now()
        window = DateRange.trailing(self.lookback_days, now)
        return self.predict_from_records(
            subject_id,
            self._store.get_sleep_records(subject_id, window),
            self._store.get_feeding_records(subject_id, window),
            self._store.get_activities(subject_id, window),
            now,
        )

    def predict_from_records(
        self,
        subject_id: str,
        sleep_records: Sequence[SleepRecord],
        feeding_records: Sequence[FeedingRecord],
        activities: Sequence[ActivityRecord],
        now: datetime,
    ) -> PredictionResult:
        """Same as predict_next_sleep for history that is already loaded."""
        window = DateRange.trailing(self.lookback_days, now)
        pattern = analyze_sleep_pattern(
            sleep_records, window, self.day_start_hour, self.day_end_hour, now=now
        )
        return predict(subject_id, sleep_records, feeding_records, activities, pattern, now)


def predict(
    subject_id: str,
    sleep_records: Sequence[SleepRecord],
    feeding_records: Sequence[FeedingRecord],
    activities: Sequence[ActivityRecord],
    sleep_pattern: SleepPatternResult,
    now: datetime,
) -> PredictionResult:
    """
    Build a PredictionResult from raw history and the sleep pattern.

    Requires MIN_RECORDS sleep records over MIN_DAYS distinct days; otherwise
    a zero-confidence result with no predictions is returned.
    """
    days = {r.start_time.date() for r in sleep_records}
    records_count = len(sleep_records) + len(feeding_records) + len(activities)
    if len(sleep_records) < MIN_RECORDS or len(days) < MIN_DAYS:
        logger.debug(
            "Prediction for %s skipped: %d sleep records over %d days",
            subject_id, len(sleep_records), len(days),
        )
        return PredictionResult(
            subject_id=subject_id,
            prediction_timestamp=now,
            valid_until=now + VALIDITY,
            based_on_records_count=records_count,
            based_on_days_count=len(days),
        )

    next_sleep = predict_next_sleep(sleep_records, sleep_pattern, now)
    next_feeding = predict_next_feeding(feeding_records, now)
    next_activity = predict_next_activity(activities, now)

    components = [
        (next_sleep.confidence if next_sleep else 0.0, 0.5),
        (next_feeding.confidence if next_feeding else 0.0, 0.3),
        (next_activity.confidence if next_activity else 0.0, 0.1),
        (sleep_pattern.confidence_score, 0.1),
    ]
    present = [(c, w) for c, w in components if c > 0]
    overall = sum(c * w for c, w in present) / sum(w for _, w in present) if present else 0.0

    return PredictionResult(
        subject_id=subject_id,
        prediction_timestamp=now,
        valid_until=now + VALIDITY,
        confidence_score=overall,
        next_sleep=next_sleep,
        next_feeding=next_feeding,
        next_activity=next_activity,
        based_on_records_count=records_count,
        based_on_days_count=len(days),
        based_on_pattern_type=sleep_pattern.pattern_type.value,
    )


# ─── Sleep ─────────────────────────────────────────────────────────────────────

def predict_next_sleep(
    records: Sequence[SleepRecord],
    sleep_pattern: SleepPatternResult,
    now: datetime,
) -> Optional[NextSleepPrediction]:
    """Wake-up window if currently asleep, otherwise the fused onset window."""
    if not records:
        return None
    ordered = sorted(records, key=lambda r: r.start_time)
    latest = ordered[-1]
    if latest.end_time > now:
        return _predict_wake_up(latest, sleep_pattern, now)

    estimates = [
        _interval_estimate(ordered, now),
        _time_of_day_estimate(ordered, now),
        _cycle_estimate(ordered, now),
    ]
    return fuse_estimates(estimates, sleep_pattern, now)


def _predict_wake_up(
    current: SleepRecord, sleep_pattern: SleepPatternResult, now: datetime
) -> NextSleepPrediction:
    elapsed = now - current.start_time
    average = timedelta(hours=sleep_pattern.average_sleep_duration_hours)
    if elapsed >= average:
        # Overdue: expect them up any minute
        return NextSleepPrediction(
            earliest_start=now,
            latest_start=now + timedelta(minutes=15),
            expected_duration_minutes=elapsed.total_seconds() / 60,
            duration_variance_minutes=15.0,
            confidence=0.7,
            predicts_wake_up=True,
        )
    remaining = average - elapsed
    average_minutes = average.total_seconds() / 60
    return NextSleepPrediction(
        earliest_start=now + remaining * 0.8,
        latest_start=now + remaining * 1.2,
        expected_duration_minutes=average_minutes,
        duration_variance_minutes=0.2 * average_minutes,
        confidence=min(0.9, sleep_pattern.confidence_score),
        predicts_wake_up=True,
    )


def _duration_stats(records: Sequence[SleepRecord]) -> Tuple[float, float]:
    minutes = [r.duration.total_seconds() / 60 for r in records]
    return mean(minutes), pstdev(minutes)


def _gap_stats(gaps: Sequence[timedelta]) -> Optional[Tuple[timedelta, timedelta]]:
    if not gaps:
        return None
    seconds = [g.total_seconds() for g in gaps]
    return timedelta(seconds=mean(seconds)), timedelta(seconds=pstdev(seconds))


def _gap_confidence(average: timedelta, spread: timedelta) -> float:
    return clamp(1 - spread / average, 0.3, 0.8)


def _interval_estimate(ordered: Sequence[SleepRecord], now: datetime) -> Optional[_Estimate]:
    """Awake gaps from one sleep's end to the next sleep's start."""
    gaps = [
        b.start_time - a.end_time
        for a, b in zip(ordered, ordered[1:])
        if timedelta(0) < b.start_time - a.end_time < _SLEEP_GAP_CAP
    ]
    stats = _gap_stats(gaps)
    if stats is None:
        return None
    average, spread = stats

    predicted = ordered[-1].end_time + average
    if predicted < now:
        predicted = now + average / 2
    half_width = max(MIN_WINDOW, spread) / 2
    duration, variance = _duration_stats(ordered)
    return _Estimate(
        earliest=predicted - half_width,
        latest=predicted + half_width,
        duration_minutes=duration,
        variance_minutes=variance,
        confidence=_gap_confidence(average, spread),
    )


def _time_of_day_estimate(ordered: Sequence[SleepRecord], now: datetime) -> Optional[_Estimate]:
    """The next usual fall-asleep time after the current time of day."""
    starts = sorted(minutes_of_day(r.start_time) for r in ordered)
    current = minutes_of_day(now)
    later = [m for m in starts if m > current]
    target = later[0] if later else starts[0] + MINUTES_PER_DAY

    nearby = [
        (fold_minutes(minutes_of_day(r.start_time) - target), r)
        for r in ordered
        if abs(fold_minutes(minutes_of_day(r.start_time) - target)) <= _TIME_OF_DAY_RADIUS_MINUTES
    ]
    if not nearby:
        return None
    offsets = [offset for offset, _ in nearby]
    spread_minutes = pstdev(offsets) if len(offsets) > 1 else 0.0

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    predicted = midnight + timedelta(minutes=target)
    half_width = max(MIN_WINDOW, timedelta(minutes=2 * spread_minutes)) / 2
    duration, variance = _duration_stats([r for _, r in nearby])
    return _Estimate(
        earliest=predicted - half_width,
        latest=predicted + half_width,
        duration_minutes=duration,
        variance_minutes=variance,
        confidence=clamp(1 - (spread_minutes / 60) / 3, 0.4, 0.9),
    )


def _cycle_estimate(ordered: Sequence[SleepRecord], now: datetime) -> Optional[_Estimate]:
    """Start-to-start spacing projected from the most recent sleep."""
    gaps = [
        b.start_time - a.start_time
        for a, b in zip(ordered, ordered[1:])
        if timedelta(0) < b.start_time - a.start_time < _CYCLE_GAP_CAP
    ]
    stats = _gap_stats(gaps)
    if stats is None:
        return None
    average, spread = stats

    predicted = ordered[-1].start_time + average
    if predicted < now:
        predicted = now + average / 3
    half_width = max(timedelta(minutes=45), spread) / 2
    duration, variance = _duration_stats(ordered)
    return _Estimate(
        earliest=predicted - half_width,
        latest=predicted + half_width,
        duration_minutes=duration,
        variance_minutes=variance,
        confidence=_gap_confidence(average, spread),
    )


def fuse_estimates(
    estimates: Sequence[Optional[_Estimate]],
    sleep_pattern: SleepPatternResult,
    now: datetime,
) -> Optional[NextSleepPrediction]:
    """
    Combine (interval, time of day, cycle) estimates into one prediction.

    Missing estimates are skipped. If every remaining estimate carries zero
    weight the most confident one is used on its own.
    """
    weights = list(_PATTERN_WEIGHTS.get(sleep_pattern.pattern_type, _DEFAULT_WEIGHTS))
    weights[1] *= sleep_pattern.regularity_score / 100
    total = sum(weights)
    weights = [w / total for w in weights] if total > 0 else [0.0, 0.0, 0.0]

    present = [(e, w) for e, w in zip(estimates, weights) if e is not None]
    if not present:
        return None

    combined = sum(w * e.confidence for e, w in present)
    if combined <= 0:
        best = max((e for e, _ in present), key=lambda e: e.confidence)
        present, combined = [(best, 1.0)], best.confidence

    def blend(value) -> float:
        return sum(w * e.confidence * value(e) for e, w in present) / combined

    earliest = now + timedelta(seconds=blend(lambda e: (e.earliest - now).total_seconds()))
    latest = now + timedelta(seconds=blend(lambda e: (e.latest - now).total_seconds()))
    earliest, latest = clamp_window(earliest, latest, now)

    weight_sum = sum(w for _, w in present)
    return NextSleepPrediction(
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=blend(lambda e: e.duration_minutes),
        duration_variance_minutes=blend(lambda e: e.variance_minutes),
        confidence=sum(w * e.confidence for e, w in present) / weight_sum,
    )


def clamp_window(earliest: datetime, latest: datetime, now: datetime) -> Tuple[datetime, datetime]:
    """Never start in the past; keep at least MIN_WINDOW between the bounds."""
    earliest = max(earliest, now)
    if latest < earliest + MIN_WINDOW:
        latest = earliest + MIN_WINDOW
    return earliest, latest


# ─── Feeding & activity ────────────────────────────────────────────────────────

def _single_interval_window(
    starts: Sequence[datetime], cap: timedelta, now: datetime
) -> Optional[Tuple[datetime, datetime, float]]:
    """(earliest, latest, confidence) from start-to-start gaps below `cap`."""
    ordered = sorted(starts)
    stats = _gap_stats([
        b - a for a, b in zip(ordered, ordered[1:]) if timedelta(0) < b - a < cap
    ])
    if stats is None:
        return None
    average, spread = stats
    predicted = ordered[-1] + average
    if predicted < now:
        predicted = now + average / 2
    half_width = max(MIN_WINDOW, spread) / 2
    earliest, latest = clamp_window(predicted - half_width, predicted + half_width, now)
    return earliest, latest, _gap_confidence(average, spread)


def predict_next_feeding(
    records: Sequence[FeedingRecord], now: datetime
) -> Optional[NextFeedingPrediction]:
    """Next feed from the spacing of recent feeds (gaps over 12h ignored)."""
    if len(records) < MIN_RECORDS:
        return None
    window = _single_interval_window([r.start_time for r in records], _FEEDING_GAP_CAP, now)
    if window is None:
        return None
    earliest, latest, confidence = window
    finished = [r for r in records if r.end_time is not None]
    duration = (
        mean((r.end_time - r.start_time).total_seconds() / 60 for r in finished)
        if finished else 20.0
    )
    return NextFeedingPrediction(
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=duration,
        confidence=confidence,
    )


def predict_next_activity(
    activities: Sequence[ActivityRecord], now: datetime
) -> Optional[NextActivityPrediction]:
    """Next occurrence of the most frequently logged activity type."""
    if len(activities) < MIN_RECORDS:
        return None
    counts = Counter(a.activity_type for a in sorted(activities, key=lambda a: a.start_time))
    activity_type, count = counts.most_common(1)[0]
    if count < MIN_RECORDS // 2:
        return None
    matching = [a for a in activities if a.activity_type == activity_type]
    window = _single_interval_window([a.start_time for a in matching], _ACTIVITY_GAP_CAP, now)
    if window is None:
        return None
    earliest, latest, confidence = window
    return NextActivityPrediction(
        activity_type=activity_type,
        earliest_start=earliest,
        latest_start=latest,
        expected_duration_minutes=mean(a.duration.total_seconds() / 60 for a in matching),
        confidence=confidence,
    )
