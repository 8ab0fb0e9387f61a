"""
Time-of-day arithmetic and small dispersion helpers.

Times of day are handled as minutes since local midnight. Averages use the
plain mean of those minutes rather than a circular mean, so a set of times
straddling midnight (23:50 and 00:10) averages to midday. Deviations from
that mean are folded by ±24h when they exceed 12h. That rescues lopsided
clusters near midnight (two times at 23:55, one at 00:05) but not ones split
evenly across it, whose mean lands near noon.
"""
from datetime import datetime, time
from statistics import mean, pstdev
from typing import Sequence

MINUTES_PER_DAY = 24 * 60
_HALF_DAY = MINUTES_PER_DAY / 2


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def minutes_of_day(moment: datetime) -> float:
    """Minutes since local midnight, with seconds as a fraction."""
    return moment.hour * 60 + moment.minute + moment.second / 60


def fold_minutes(delta: float) -> float:
    """Fold a difference between two times of day into (-12h, 12h]."""
    if delta > _HALF_DAY:
        return delta - MINUTES_PER_DAY
    if delta < -_HALF_DAY:
        return delta + MINUTES_PER_DAY
    return delta


def mean_minutes(values: Sequence[float]) -> float:
    return mean(values) if values else 0.0


def to_time_of_day(minutes: float) -> time:
    """Convert minutes since midnight back to a `time`, wrapping past 24h."""
    total_seconds = int(round(minutes * 60)) % (MINUTES_PER_DAY * 60)
    hours, remainder = divmod(total_seconds, 3600)
    return time(hour=hours, minute=remainder // 60, second=remainder % 60)


def time_stddev(values: Sequence[float]) -> float:
    """
    Population standard deviation of times of day, in minutes.

    Each value's deviation from the mean is folded by ±24h before squaring.
    """
    if len(values) < 2:
        return 0.0
    reference = mean(values)
    return pstdev([fold_minutes(v - reference) for v in values])


def coefficient_of_variation(values: Sequence[float]) -> float:
    """pstdev / mean, or 0.0 when undefined (fewer than 2 values, zero mean)."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    if avg <= 0:
        return 0.0
    return pstdev(values) / avg
