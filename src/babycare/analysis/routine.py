"""
Cross-activity routine analysis.

Where the sleep analyzer looks at one kind of record, this module looks at
the whole day: sleep, feeds, play, baths, diapers. It answers
  - how consistently each activity type happens at the same time of day
    (regularity score and pattern type)
  - which sequences repeat (e.g. feed -> play -> sleep -> feed)
  - how the tracked time splits between sleep, feeding, play and the rest
  - whether the routine is settling down or breaking up (trend)
  - a suggested daily schedule once the routine is regular enough

Cycle detection walks each day in time order, merges back-to-back entries of
the same type, and records a cycle when a run of at least three distinct
types is about to return to the type it started with.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from statistics import mean
from typing import Dict, List, Optional, Sequence, Tuple

from babycare.analysis.records import ActivityRecord, ActivityType, DateRange
from babycare.analysis.timeofday import (
    clamp,
    coefficient_of_variation,
    mean_minutes,
    minutes_of_day,
    time_stddev,
    to_time_of_day,
)

logger = logging.getLogger(__name__)

MIN_RECORDS_FOR_ANALYSIS = 10
MIN_DAYS_FOR_ANALYSIS = 3
MIN_RECORDS_FOR_TREND = 20
MIN_DAYS_FOR_TREND = 7
MIN_CYCLE_LENGTH = 3

# Gaps of a day or more are logging holes, not intervals
_MAX_INTERVAL_HOURS = 24.0

_PLAY_TYPES = (ActivityType.PLAY, ActivityType.TUMMY_TIME, ActivityType.OUTDOORS)
_SCHEDULE_TYPES = (ActivityType.SLEEP, ActivityType.FEEDING, ActivityType.PLAY)


class RoutinePatternType(str, Enum):
    HIGHLY_REGULAR = "highly_regular"
    MODERATELY_REGULAR = "moderately_regular"
    IRREGULAR = "irregular"
    EVOLVING = "evolving"
    TRANSITIONING = "transitioning"
    INSUFFICIENT = "insufficient"


class RoutineTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    FLUCTUATING = "fluctuating"
    INSUFFICIENT_DATA = "insufficient_data"


class ActivityCategory(str, Enum):
    SLEEP = "sleep"
    FEEDING = "feeding"
    PLAY = "play"
    OTHER = "other"


@dataclass
class RoutineCycle:
    """An ordered sequence of activity types that keeps repeating."""
    activity_sequence: Tuple[ActivityType, ...]
    occurrences: int
    average_duration_minutes: float
    frequency_per_day: float   # occurrences / days the cycle was seen on
    regularity_score: int      # 0-100


@dataclass
class CategoryDistribution:
    category: ActivityCategory
    percentage: float                 # share of tracked time, 0-100
    average_duration_minutes: float
    average_interval_hours: Optional[float] = None  # sleep and feeding only


@dataclass
class ScheduleItem:
    activity_type: ActivityType
    start_time: time
    duration_minutes: float
    confidence: float   # 0.1-0.9


@dataclass
class RoutinePatternResult:
    """Aggregate view of a subject's daily routine over a date range."""

    date_range: DateRange
    records_count: int
    days_observed: int
    analyzed_at: datetime

    regularity_score: int = 0
    pattern_type: RoutinePatternType = RoutinePatternType.INSUFFICIENT
    cycles: List[RoutineCycle] = field(default_factory=list)
    distribution: List[CategoryDistribution] = field(default_factory=list)
    trend: RoutineTrend = RoutineTrend.INSUFFICIENT_DATA
    suggested_schedule: Optional[List[ScheduleItem]] = None
    confidence_score: float = 0.0

    source: str = "local"
    recommendations: List[str] = field(default_factory=list)


def analyze_routine(
    activities: Sequence[ActivityRecord],
    date_range: DateRange,
    now: Optional[datetime] = None,
) -> RoutinePatternResult:
    """
    Analyze a mixed list of activity records.

    Args:
        activities: records of any type, in any order; not modified
        date_range: the range the records were loaded for
        now: analysis timestamp, defaults to the current time

    Returns:
        RoutinePatternResult. Below MIN_RECORDS_FOR_ANALYSIS records or
        MIN_DAYS_FOR_ANALYSIS distinct days the result is zeroed with
        pattern_type INSUFFICIENT.
    """
    analyzed_at = now or datetime.now()
    ordered = sorted(activities, key=lambda a: (a.start_time, a.id))
    days = _group_by_day(ordered)

    if len(ordered) < MIN_RECORDS_FOR_ANALYSIS or len(days) < MIN_DAYS_FOR_ANALYSIS:
        logger.debug(
            "Routine analysis skipped: %d records over %d days", len(ordered), len(days)
        )
        return RoutinePatternResult(
            date_range=date_range,
            records_count=len(ordered),
            days_observed=len(days),
            analyzed_at=analyzed_at,
        )

    score = routine_regularity(ordered)
    cycles = find_cycles(ordered)
    trend = routine_trend(ordered)

    schedule = None
    if score >= 50 and cycles:
        schedule = suggest_schedule(ordered)

    return RoutinePatternResult(
        date_range=date_range,
        records_count=len(ordered),
        days_observed=len(days),
        analyzed_at=analyzed_at,
        regularity_score=score,
        pattern_type=_classify(score, trend, len(days)),
        cycles=cycles,
        distribution=activity_distribution(ordered),
        trend=trend,
        suggested_schedule=schedule,
        confidence_score=0.6 * min(1.0, len(ordered) / 50) + 0.4 * min(1.0, len(days) / 14),
    )


# ─── Regularity ────────────────────────────────────────────────────────────────

def _group_by_day(activities: Sequence[ActivityRecord]) -> Dict[date, List[ActivityRecord]]:
    by_day: Dict[date, List[ActivityRecord]] = defaultdict(list)
    for activity in activities:
        by_day[activity.start_time.date()].append(activity)
    return by_day


def routine_regularity(activities: Sequence[ActivityRecord]) -> int:
    """
    0-100 score of how consistently each activity type recurs at one time.

    For every type seen on at least MIN_DAYS_FOR_ANALYSIS days, take the mean
    start time on each day, then the spread of those daily means. A type
    loses one point per 1.2 minutes of spread. Types are averaged.
    """
    daily_starts: Dict[ActivityType, Dict[date, List[float]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for activity in activities:
        daily_starts[activity.activity_type][activity.start_time.date()].append(
            minutes_of_day(activity.start_time)
        )

    type_scores = []
    for by_day in daily_starts.values():
        if len(by_day) < MIN_DAYS_FOR_ANALYSIS:
            continue
        daily_means = [mean(starts) for starts in by_day.values()]
        type_scores.append(clamp(100 - time_stddev(daily_means) / 1.2, 0, 100))

    if not type_scores:
        return 0
    return int(round(mean(type_scores)))


def _classify(score: int, trend: RoutineTrend, days_observed: int) -> RoutinePatternType:
    if score >= 80:
        return RoutinePatternType.HIGHLY_REGULAR
    if score >= 60:
        return RoutinePatternType.MODERATELY_REGULAR
    if trend in (RoutineTrend.IMPROVING, RoutineTrend.DECLINING):
        return RoutinePatternType.TRANSITIONING
    if days_observed < MIN_DAYS_FOR_TREND:
        return RoutinePatternType.EVOLVING
    return RoutinePatternType.IRREGULAR


# ─── Cycles ────────────────────────────────────────────────────────────────────

@dataclass
class _Block:
    activity_type: ActivityType
    start_time: datetime
    end_time: datetime


def _coalesce(day: Sequence[ActivityRecord]) -> List[_Block]:
    """Merge back-to-back entries of the same type into one block."""
    blocks: List[_Block] = []
    for activity in day:
        if blocks and blocks[-1].activity_type == activity.activity_type:
            blocks[-1].end_time = max(blocks[-1].end_time, activity.end_time)
        else:
            blocks.append(_Block(activity.activity_type, activity.start_time, activity.end_time))
    return blocks


def find_cycles(activities: Sequence[ActivityRecord]) -> List[RoutineCycle]:
    """
    Detect repeating activity sequences, most frequent first.

    A sequence only holds distinct types. It is recorded as a cycle when it
    has at least MIN_CYCLE_LENGTH types and the next block returns to the
    type it started with; a repeated type that doesn't close the loop
    starts a new sequence.
    """
    durations: Dict[Tuple[ActivityType, ...], List[float]] = defaultdict(list)
    seen_on: Dict[Tuple[ActivityType, ...], set] = defaultdict(set)

    for day, entries in sorted(_group_by_day(activities).items()):
        blocks = _coalesce(sorted(entries, key=lambda a: a.start_time))
        sequence: List[_Block] = []
        for i, block in enumerate(blocks):
            if any(b.activity_type == block.activity_type for b in sequence):
                sequence = []
            sequence.append(block)
            upcoming = blocks[i + 1] if i + 1 < len(blocks) else None
            if (
                len(sequence) >= MIN_CYCLE_LENGTH
                and upcoming is not None
                and upcoming.activity_type == sequence[0].activity_type
            ):
                key = tuple(b.activity_type for b in sequence)
                minutes = (sequence[-1].end_time - sequence[0].start_time).total_seconds() / 60
                durations[key].append(minutes)
                seen_on[key].add(day)
                sequence = []

    cycles = []
    for key, minutes in durations.items():
        frequency = len(minutes) / len(seen_on[key])
        duration_score = clamp(100 - coefficient_of_variation(minutes) * 100, 0, 100)
        frequency_score = clamp(100 - abs(frequency - round(frequency)) * 100, 0, 100)
        cycles.append(RoutineCycle(
            activity_sequence=key,
            occurrences=len(minutes),
            average_duration_minutes=mean(minutes),
            frequency_per_day=frequency,
            regularity_score=int(round(0.7 * duration_score + 0.3 * frequency_score)),
        ))
    cycles.sort(key=lambda c: (-c.frequency_per_day, -c.occurrences, [t.value for t in c.activity_sequence]))
    return cycles


# ─── Distribution ──────────────────────────────────────────────────────────────

def category_of(activity_type: ActivityType) -> ActivityCategory:
    if activity_type == ActivityType.SLEEP:
        return ActivityCategory.SLEEP
    if activity_type == ActivityType.FEEDING:
        return ActivityCategory.FEEDING
    if activity_type in _PLAY_TYPES:
        return ActivityCategory.PLAY
    return ActivityCategory.OTHER


def _average_interval_hours(activities: Sequence[ActivityRecord]) -> Optional[float]:
    """Mean start-to-start spacing, ignoring gaps of 24h or more."""
    starts = sorted(a.start_time for a in activities)
    gaps = [(b - a).total_seconds() / 3600 for a, b in zip(starts, starts[1:])]
    gaps = [g for g in gaps if 0 < g < _MAX_INTERVAL_HOURS]
    return mean(gaps) if gaps else None


def activity_distribution(activities: Sequence[ActivityRecord]) -> List[CategoryDistribution]:
    """Share of tracked time and typical duration for each category."""
    by_category: Dict[ActivityCategory, List[ActivityRecord]] = defaultdict(list)
    for activity in activities:
        by_category[category_of(activity.activity_type)].append(activity)

    total_seconds = sum(a.duration.total_seconds() for a in activities)
    distribution = []
    for category in ActivityCategory:
        members = by_category.get(category, [])
        seconds = [a.duration.total_seconds() for a in members]
        interval = None
        if category in (ActivityCategory.SLEEP, ActivityCategory.FEEDING):
            interval = _average_interval_hours(members)
        distribution.append(CategoryDistribution(
            category=category,
            percentage=100 * sum(seconds) / total_seconds if total_seconds > 0 else 0.0,
            average_duration_minutes=mean(seconds) / 60 if seconds else 0.0,
            average_interval_hours=interval,
        ))
    return distribution


# ─── Trend & schedule ──────────────────────────────────────────────────────────

def _cycle_stability(activities: Sequence[ActivityRecord]) -> float:
    cycles = find_cycles(activities)
    return mean(c.regularity_score for c in cycles) if cycles else 0.0


def routine_trend(ordered: Sequence[ActivityRecord]) -> RoutineTrend:
    """
    Compare the earlier half of the records with the later half.

    Composite = 70% regularity change + 30% cycle-stability change, both on
    the 0-100 scale. Beyond ±10 is improving/declining; otherwise a
    cycle-stability swing over 15 is fluctuating.
    """
    if len(ordered) < MIN_RECORDS_FOR_TREND or len(_group_by_day(ordered)) < MIN_DAYS_FOR_TREND:
        return RoutineTrend.INSUFFICIENT_DATA

    mid = len(ordered) // 2
    first, second = ordered[:mid], ordered[mid:]
    regularity_change = routine_regularity(second) - routine_regularity(first)
    stability_change = _cycle_stability(second) - _cycle_stability(first)

    score = 0.7 * regularity_change + 0.3 * stability_change
    if score > 10:
        return RoutineTrend.IMPROVING
    if score < -10:
        return RoutineTrend.DECLINING
    if abs(stability_change) > 15:
        return RoutineTrend.FLUCTUATING
    return RoutineTrend.STABLE


def suggest_schedule(activities: Sequence[ActivityRecord]) -> List[ScheduleItem]:
    """
    One suggested slot per core activity type, in time-of-day order.

    Confidence falls by 0.1 for every 12 minutes of start-time spread and is
    kept within [0.1, 0.9].
    """
    items = []
    for activity_type in _SCHEDULE_TYPES:
        matching = [a for a in activities if a.activity_type == activity_type]
        if not matching:
            continue
        starts = [minutes_of_day(a.start_time) for a in matching]
        items.append(ScheduleItem(
            activity_type=activity_type,
            start_time=to_time_of_day(mean_minutes(starts)),
            duration_minutes=mean(a.duration.total_seconds() for a in matching) / 60,
            confidence=clamp(1 - time_stddev(starts) / 120, 0.1, 0.9),
        ))
    items.sort(key=lambda item: item.start_time)
    return items
