"""
Sleep pattern analysis: descriptive statistics, regularity and trend.

Given the sleep intervals logged over a date range we compute:
  1. Daily totals, split into daytime and night-time sleep by the hour each
     record starts (default day window 06:00-20:00)
  2. Average fall-asleep and wake-up time of day
  3. Night wakings (gaps between consecutive night records on one day)
  4. Sleep efficiency from logged interruptions
  5. An estimated sleep-cycle length from the spacing of interruptions
  6. A regularity score (0-100) and a pattern classification
  7. A first-half vs second-half trend
  8. Correlation of room readings (light, noise, ...) with sleep quality

Each step has its own minimum sample size. Below the overall minimum we
return a zeroed "insufficient" result rather than raising, since a new
baby simply hasn't got five nights of history yet.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from statistics import StatisticsError, correlation, mean, median
from typing import Dict, List, Optional, Sequence, Tuple

from babycare.analysis.records import DateRange, SleepRecord
from babycare.analysis.timeofday import (
    clamp,
    coefficient_of_variation,
    mean_minutes,
    minutes_of_day,
    time_stddev,
    to_time_of_day,
)

logger = logging.getLogger(__name__)

MIN_RECORDS_FOR_ANALYSIS = 5
MIN_RECORDS_FOR_CYCLE_ESTIMATE = 10
MIN_RECORDS_FOR_TREND = 14
MIN_RECORDS_FOR_ENVIRONMENT = 8

ENVIRONMENTAL_FACTORS = ("light", "noise", "temperature", "humidity")


class SleepPatternType(str, Enum):
    HIGHLY_REGULAR = "highly_regular"
    MODERATELY_REGULAR = "moderately_regular"
    IRREGULAR = "irregular"
    EVOLVING = "evolving"
    TRANSITIONING = "transitioning"
    INSUFFICIENT = "insufficient"


class SleepTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    FLUCTUATING = "fluctuating"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class EnvironmentalFactorImpact:
    factor: str
    impact: float       # Pearson r against duration x efficiency, -1..1
    confidence: float   # 0..0.9, grows with sample size
    sample_size: int


@dataclass
class SleepPatternResult:
    """Aggregate view of a subject's sleep over a date range."""

    date_range: DateRange
    records_count: int
    analyzed_at: datetime

    total_sleep_hours: float = 0.0         # average per day with records
    daytime_sleep_hours: float = 0.0       # per day
    nighttime_sleep_hours: float = 0.0     # per day
    average_sleep_duration_hours: float = 0.0
    average_fall_asleep_time: Optional[time] = None
    average_wake_up_time: Optional[time] = None
    night_waking_count: float = 0.0        # per day with night sleep
    night_waking_minutes: float = 0.0      # per day with night sleep
    sleep_efficiency: float = 0.0          # 0..1
    estimated_cycle_minutes: Optional[float] = None

    pattern_type: SleepPatternType = SleepPatternType.INSUFFICIENT
    regularity_score: int = 0
    environmental_factors: List[EnvironmentalFactorImpact] = field(default_factory=list)
    trend: SleepTrend = SleepTrend.INSUFFICIENT_DATA
    confidence_score: float = 0.0

    source: str = "local"
    recommendations: List[str] = field(default_factory=list)


def analyze_sleep_pattern(
    records: Sequence[SleepRecord],
    date_range: DateRange,
    day_start_hour: int = 6,
    day_end_hour: int = 20,
    now: Optional[datetime] = None,
) -> SleepPatternResult:
    """
    Analyze a set of sleep records.

    Args:
        records: sleep records in any order; not modified
        date_range: the range the records were loaded for (drives confidence)
        day_start_hour: first hour counted as daytime
        day_end_hour: first hour counted as night again
        now: analysis timestamp, defaults to the current time

    Returns:
        SleepPatternResult. With fewer than MIN_RECORDS_FOR_ANALYSIS records
        every aggregate is zero and pattern_type is INSUFFICIENT.
    """
    analyzed_at = now or datetime.now()
    if len(records) < MIN_RECORDS_FOR_ANALYSIS:
        logger.debug("Only %d sleep records, returning insufficient result", len(records))
        return SleepPatternResult(
            date_range=date_range, records_count=len(records), analyzed_at=analyzed_at
        )

    ordered = sorted(records, key=lambda r: r.start_time)

    def is_night(record: SleepRecord) -> bool:
        hour = record.start_time.hour
        return hour < day_start_hour or hour >= day_end_hour

    by_day = _group_by_day(ordered)
    day_count = len(by_day)
    total_hours = mean(sum(_hours(r) for r in day) for day in by_day.values())
    daytime_hours = sum(_hours(r) for r in ordered if not is_night(r)) / day_count
    nighttime_hours = sum(_hours(r) for r in ordered if is_night(r)) / day_count

    fall_asleep = [minutes_of_day(r.start_time) for r in ordered]
    wake_up = [minutes_of_day(r.end_time) for r in ordered]
    durations = [_hours(r) for r in ordered]

    waking_count, waking_minutes = night_wakings(ordered, day_start_hour, day_end_hour)

    cycle_minutes = None
    if len(ordered) >= MIN_RECORDS_FOR_CYCLE_ESTIMATE:
        cycle_minutes = estimate_cycle_minutes([r for r in ordered if is_night(r)])

    fall_sd = time_stddev(fall_asleep)
    wake_sd = time_stddev(wake_up)
    duration_cv = coefficient_of_variation(durations)

    trend = sleep_trend(ordered)
    pattern = classify_sleep_pattern(fall_sd, wake_sd, duration_cv, trend, len(ordered))

    environmental = []
    with_readings = [r for r in ordered if r.environment is not None]
    if len(with_readings) >= MIN_RECORDS_FOR_ENVIRONMENT:
        environmental = environmental_impacts(with_readings)

    return SleepPatternResult(
        date_range=date_range,
        records_count=len(records),
        analyzed_at=analyzed_at,
        total_sleep_hours=total_hours,
        daytime_sleep_hours=daytime_hours,
        nighttime_sleep_hours=nighttime_hours,
        average_sleep_duration_hours=mean(durations),
        average_fall_asleep_time=to_time_of_day(mean_minutes(fall_asleep)),
        average_wake_up_time=to_time_of_day(mean_minutes(wake_up)),
        night_waking_count=waking_count,
        night_waking_minutes=waking_minutes,
        sleep_efficiency=mean(sleep_efficiency(r) for r in ordered),
        estimated_cycle_minutes=cycle_minutes,
        pattern_type=pattern,
        regularity_score=regularity_score(fall_sd, wake_sd, duration_cv),
        environmental_factors=environmental,
        trend=trend,
        confidence_score=_confidence(len(records), date_range),
    )


# ─── Building blocks ───────────────────────────────────────────────────────────

def _hours(record: SleepRecord) -> float:
    return record.duration.total_seconds() / 3600


def _group_by_day(records: Sequence[SleepRecord]) -> Dict[date, List[SleepRecord]]:
    """Bucket records by the calendar date they start on."""
    by_day: Dict[date, List[SleepRecord]] = defaultdict(list)
    for record in records:
        by_day[record.start_time.date()].append(record)
    return by_day


def sleep_efficiency(record: SleepRecord) -> float:
    """
    Fraction of the interval actually spent asleep, clamped to [0, 1].

    A record without interruption data counts as fully efficient.
    """
    if not record.interruptions:
        return 1.0
    duration = record.duration.total_seconds()
    if duration <= 0:
        return 0.0
    awake = sum(i.duration.total_seconds() for i in record.interruptions)
    return clamp((duration - awake) / duration, 0.0, 1.0)


def night_wakings(
    records: Sequence[SleepRecord],
    day_start_hour: int = 6,
    day_end_hour: int = 20,
) -> Tuple[float, float]:
    """
    Average night wakings per day and minutes awake between them.

    On each calendar day, N night-time records mean N - 1 wakings, and the
    waking time is the sum of the positive gaps between consecutive records.
    Both are averaged over the days that have any night-time sleep.

    Returns:
        (wakings per night, waking minutes per night)
    """
    nights: Dict[date, List[SleepRecord]] = defaultdict(list)
    for record in records:
        hour = record.start_time.hour
        if hour < day_start_hour or hour >= day_end_hour:
            nights[record.start_time.date()].append(record)
    if not nights:
        return 0.0, 0.0

    total_count = 0
    total_minutes = 0.0
    for night in nights.values():
        night.sort(key=lambda r: r.start_time)
        total_count += len(night) - 1
        for previous, current in zip(night, night[1:]):
            gap = (current.start_time - previous.end_time).total_seconds() / 60
            if gap > 0:
                total_minutes += gap
    return total_count / len(nights), total_minutes / len(nights)


def estimate_cycle_minutes(night_records: Sequence[SleepRecord]) -> Optional[float]:
    """
    Median spacing between consecutive interruptions within a night.

    Only records with at least two interruptions contribute. The median
    keeps one long stretch of unbroken sleep from dragging the estimate.
    Returns None with fewer than 3 intervals.
    """
    intervals: List[float] = []
    for record in night_records:
        if len(record.interruptions) < 2:
            continue
        starts = sorted(i.start_time for i in record.interruptions)
        for previous, current in zip(starts, starts[1:]):
            minutes = (current - previous).total_seconds() / 60
            if minutes > 0:
                intervals.append(minutes)
    if len(intervals) < 3:
        return None
    return median(intervals)


def regularity_score(fall_asleep_sd: float, wake_up_sd: float, duration_cv: float) -> int:
    """
    0-100 regularity from timing spread (minutes) and duration variation.

    40% fall-asleep timing, 40% wake-up timing, 20% duration. Each timing
    score loses one point per 1.2 minutes of standard deviation; the
    duration score loses 4 points per 1% of coefficient of variation.
    """
    fall_score = clamp(100 - fall_asleep_sd / 1.2, 0, 100)
    wake_score = clamp(100 - wake_up_sd / 1.2, 0, 100)
    duration_score = clamp(100 - duration_cv * 400, 0, 100)
    return int(round(0.4 * fall_score + 0.4 * wake_score + 0.2 * duration_score))


def classify_sleep_pattern(
    fall_asleep_sd: float,
    wake_up_sd: float,
    duration_cv: float,
    trend: SleepTrend,
    records_count: int,
) -> SleepPatternType:
    if fall_asleep_sd < 30 and wake_up_sd < 30 and duration_cv < 0.15:
        return SleepPatternType.HIGHLY_REGULAR
    if fall_asleep_sd < 60 and wake_up_sd < 60 and duration_cv < 0.25:
        return SleepPatternType.MODERATELY_REGULAR
    if trend in (SleepTrend.IMPROVING, SleepTrend.DECLINING):
        return SleepPatternType.TRANSITIONING
    if records_count < MIN_RECORDS_FOR_TREND:
        return SleepPatternType.EVOLVING
    return SleepPatternType.IRREGULAR


def sleep_trend(ordered: Sequence[SleepRecord]) -> SleepTrend:
    """
    Compare the earlier half of the records with the later half.

    Composite = 40% relative duration change + 40% efficiency change
    + 20% change in start-time regularity. Above +0.1 is improving, below
    -0.1 declining; otherwise a regularity swing over 0.2 is fluctuating.
    """
    if len(ordered) < MIN_RECORDS_FOR_TREND:
        return SleepTrend.INSUFFICIENT_DATA

    mid = len(ordered) // 2
    first, second = ordered[:mid], ordered[mid:]

    first_duration = mean(_hours(r) for r in first)
    second_duration = mean(_hours(r) for r in second)
    duration_change = (
        (second_duration - first_duration) / first_duration if first_duration > 0 else 0.0
    )
    efficiency_change = mean(sleep_efficiency(r) for r in second) - mean(
        sleep_efficiency(r) for r in first
    )
    regularity_change = _start_regularity(second) - _start_regularity(first)

    score = 0.4 * duration_change + 0.4 * efficiency_change + 0.2 * regularity_change
    if score > 0.1:
        return SleepTrend.IMPROVING
    if score < -0.1:
        return SleepTrend.DECLINING
    if abs(regularity_change) > 0.2:
        return SleepTrend.FLUCTUATING
    return SleepTrend.STABLE


def _start_regularity(records: Sequence[SleepRecord]) -> float:
    """1 - CV of the spacing between consecutive sleep starts, in [0, 1]."""
    if len(records) < 3:
        return 0.0
    gaps = [
        (b.start_time - a.start_time).total_seconds() / 3600
        for a, b in zip(records, records[1:])
    ]
    if mean(gaps) <= 0:
        return 0.0
    return clamp(1 - coefficient_of_variation(gaps), 0.0, 1.0)


def environmental_impacts(records: Sequence[SleepRecord]) -> List[EnvironmentalFactorImpact]:
    """
    Correlate each room reading with sleep quality (hours x efficiency).

    A factor needs readings on at least half of MIN_RECORDS_FOR_ENVIRONMENT
    records. Constant readings carry no signal and report zero impact.
    """
    impacts = []
    for factor in ENVIRONMENTAL_FACTORS:
        pairs = [
            (r.environment.value_for(factor), _hours(r) * sleep_efficiency(r))
            for r in records
            if r.environment is not None and r.environment.value_for(factor) is not None
        ]
        if len(pairs) < MIN_RECORDS_FOR_ENVIRONMENT // 2:
            continue
        values, qualities = zip(*pairs)
        try:
            r_value = correlation(values, qualities)
        except StatisticsError:
            r_value = 0.0
        impacts.append(EnvironmentalFactorImpact(
            factor=factor,
            impact=clamp(r_value, -1.0, 1.0),
            confidence=min(0.9, 0.5 + len(pairs) / 20),
            sample_size=len(pairs),
        ))
    return impacts


def _confidence(records_count: int, date_range: DateRange) -> float:
    return 0.7 * min(1.0, records_count / 30) + 0.3 * min(1.0, date_range.days / 30)
