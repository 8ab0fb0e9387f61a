"""
Client-side usage limits for the cloud analysis API.

Three independent brakes, all tracked per credential:
  1. Quota: at most `max_per_hour` requests in any rolling hour and
     `max_per_day` in any rolling day
  2. Burst guard: `burst_size` requests inside `burst_window` pauses the
     credential until `burst_window` after the latest of them
  3. Backoff: each 429 from the service blocks the credential for 5 min,
     then 10, 20, 40, capped at 1h; the next successful call resets it

A blocked check raises RateLimitedError before anything goes on the wire.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from babycare.cloud.errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def check(self, credential: str) -> None:
        ...

    def record_request(self, credential: str) -> None:
        ...

    def record_success(self, credential: str) -> None:
        ...

    def record_rate_limited(self, credential: str) -> None:
        ...

    def usage(self, credential: str) -> "UsageSnapshot":
        ...


@dataclass
class UsageSnapshot:
    requests_last_hour: int
    requests_last_day: int
    hourly_remaining: int
    daily_remaining: int
    blocked_until: Optional[datetime] = None


class UsageLimiter:
    def __init__(
        self,
        max_per_hour: int = 10,
        max_per_day: int = 30,
        burst_size: int = 3,
        burst_window: timedelta = timedelta(minutes=5),
        initial_backoff: timedelta = timedelta(minutes=5),
        max_backoff: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.max_per_hour = max_per_hour
        self.max_per_day = max_per_day
        self.burst_size = burst_size
        self.burst_window = burst_window
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._clock = clock
        self._lock = threading.Lock()
        self._history: Dict[str, List[datetime]] = defaultdict(list)
        self._backoff_step: Dict[str, timedelta] = {}
        self._backoff_until: Dict[str, datetime] = {}

    # ── Queries ───────────────────────────────────────────────────────────────

    def _prune(self, credential: str, now: datetime) -> List[datetime]:
        history = [t for t in self._history[credential] if t > now - timedelta(days=1)]
        self._history[credential] = history
        return history

    def _blocked_until(self, credential: str, now: datetime) -> Optional[datetime]:
        history = self._prune(credential, now)
        backoff = self._backoff_until.get(credential)
        if backoff is not None and now < backoff:
            return backoff

        last_hour = [t for t in history if t > now - timedelta(hours=1)]
        if len(last_hour) >= self.max_per_hour:
            return last_hour[0] + timedelta(hours=1)
        if len(history) >= self.max_per_day:
            return history[0] + timedelta(days=1)

        if history:
            latest = history[-1]
            burst = [t for t in history if t > latest - self.burst_window]
            if len(burst) >= self.burst_size and now < latest + self.burst_window:
                return latest + self.burst_window
        return None

    def blocked_until(self, credential: str) -> Optional[datetime]:
        """When the credential may send again, or None if it may send now."""
        with self._lock:
            return self._blocked_until(credential, self._clock())

    def can_make_request(self, credential: str) -> bool:
        return self.blocked_until(credential) is None

    def check(self, credential: str) -> None:
        """Raise RateLimitedError if the credential must wait."""
        until = self.blocked_until(credential)
        if until is not None:
            logger.info("Cloud request blocked until %s", until.isoformat())
            raise RateLimitedError("Local usage limit reached", retry_after=until)

    def usage(self, credential: str) -> UsageSnapshot:
        with self._lock:
            now = self._clock()
            blocked = self._blocked_until(credential, now)
            history = self._history[credential]
            last_hour = sum(1 for t in history if t > now - timedelta(hours=1))
            return UsageSnapshot(
                requests_last_hour=last_hour,
                requests_last_day=len(history),
                hourly_remaining=max(0, self.max_per_hour - last_hour),
                daily_remaining=max(0, self.max_per_day - len(history)),
                blocked_until=blocked,
            )

    # ── Updates ───────────────────────────────────────────────────────────────

    def record_request(self, credential: str) -> None:
        with self._lock:
            self._history[credential].append(self._clock())

    def record_success(self, credential: str) -> None:
        with self._lock:
            self._backoff_step.pop(credential, None)
            self._backoff_until.pop(credential, None)

    def record_rate_limited(self, credential: str) -> None:
        """Start or double the backoff after the service answered 429."""
        with self._lock:
            previous = self._backoff_step.get(credential)
            step = self.initial_backoff if previous is None else min(previous * 2, self.max_backoff)
            self._backoff_step[credential] = step
            self._backoff_until[credential] = self._clock() + step
            logger.warning("Cloud service rate limited us; backing off %s", step)
