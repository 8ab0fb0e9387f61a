"""
Cloud analysis gateway: cache, usage limits, anonymization, remote call.

For each operation:
  1. Serve a cached result if one is still fresh
  2. Refuse early if there is nothing to analyze, or the limiter says wait
  3. Anonymize the records and send them to Claude
  4. Convert the JSON reply, cache it, return it

Every failure surfaces as a CloudError; deciding what to do about it is the
orchestrator's job.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Sequence

from babycare.ai.claude_client import ClaudeClient
from babycare.analysis.prediction import PredictionResult
from babycare.analysis.records import ActivityRecord, DateRange, FeedingRecord, SleepRecord
from babycare.analysis.routine import RoutinePatternResult
from babycare.analysis.sleep_pattern import SleepPatternResult
from babycare.cloud import convert
from babycare.cloud.anonymizer import DataAnonymizer
from babycare.cloud.cache import CacheKey, CacheStore
from babycare.cloud.errors import CloudInsufficientDataError, RateLimitedError
from babycare.cloud.usage_limiter import RateLimiter
from babycare.prompts.cloud_analysis import (
    SYSTEM_PROMPT,
    build_prediction_prompt,
    build_routine_analysis_prompt,
    build_sleep_analysis_prompt,
)

logger = logging.getLogger(__name__)

ANALYSIS_TTL = timedelta(hours=1)
PREDICTION_TTL = timedelta(minutes=30)


def analysis_key(subject_id: str, kind: str, date_range: DateRange) -> CacheKey:
    # Trailing windows move with the clock, so key on calendar dates
    return CacheKey(
        subject_id, kind,
        date_range.start.date().isoformat(), date_range.end.date().isoformat(),
    )


def prediction_key(subject_id: str, date_range: DateRange) -> CacheKey:
    return analysis_key(subject_id, "prediction", date_range)


class CloudAnalysisGateway:
    def __init__(
        self,
        cache: CacheStore,
        limiter: RateLimiter,
        anonymizer: DataAnonymizer,
        client_factory: Callable[[str], ClaudeClient] = ClaudeClient,
        analysis_ttl: timedelta = ANALYSIS_TTL,
        prediction_ttl: timedelta = PREDICTION_TTL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.cache = cache
        self.limiter = limiter
        self._anonymizer = anonymizer
        self._client_factory = client_factory
        self._clients: Dict[str, ClaudeClient] = {}
        self.analysis_ttl = analysis_ttl
        self.prediction_ttl = prediction_ttl
        self._clock = clock

    def _client(self, credential: str) -> ClaudeClient:
        client = self._clients.get(credential)
        if client is None:
            client = self._client_factory(credential)
            self._clients[credential] = client
        return client

    def forget_clients(self) -> None:
        """Drop clients built for credentials that are no longer in use."""
        self._clients.clear()

    async def _call(self, credential: str, prompt: str) -> dict:
        self.limiter.check(credential)
        client = self._client(credential)
        self.limiter.record_request(credential)
        try:
            data = await client.complete_json(prompt, system_prompt=SYSTEM_PROMPT)
        except RateLimitedError:
            self.limiter.record_rate_limited(credential)
            raise
        self.limiter.record_success(credential)
        return data

    def _cached(self, key: CacheKey):
        value = self.cache.get(key)
        logger.debug("Cloud cache %s for %s", "hit" if value is not None else "miss", key)
        return value

    # ── Operations ────────────────────────────────────────────────────────────

    async def analyze_sleep(
        self,
        credential: str,
        subject_id: str,
        date_range: DateRange,
        records: Sequence[SleepRecord],
    ) -> SleepPatternResult:
        key = analysis_key(subject_id, "sleep", date_range)
        cached = self._cached(key)
        if cached is not None:
            return cached
        if not records:
            raise CloudInsufficientDataError("No sleep records to analyze")

        now = self._clock()
        payload = self._anonymizer.payload(subject_id, now, sleep_records=records)
        data = await self._call(credential, build_sleep_analysis_prompt(payload))
        result = convert.sleep_result_from_response(data, date_range, len(records), now)
        self.cache.put(key, result, self.analysis_ttl)
        return result

    async def analyze_routine(
        self,
        credential: str,
        subject_id: str,
        date_range: DateRange,
        activities: Sequence[ActivityRecord],
    ) -> RoutinePatternResult:
        key = analysis_key(subject_id, "routine", date_range)
        cached = self._cached(key)
        if cached is not None:
            return cached
        if not activities:
            raise CloudInsufficientDataError("No activities to analyze")

        now = self._clock()
        payload = self._anonymizer.payload(subject_id, now, activities=activities)
        data = await self._call(credential, build_routine_analysis_prompt(payload))
        days = len({a.start_time.date() for a in activities})
        result = convert.routine_result_from_response(data, date_range, len(activities), days, now)
        self.cache.put(key, result, self.analysis_ttl)
        return result

    async def predict_next_sleep(
        self,
        credential: str,
        subject_id: str,
        date_range: DateRange,
        sleep_records: Sequence[SleepRecord],
        feeding_records: Sequence[FeedingRecord] = (),
        activities: Sequence[ActivityRecord] = (),
    ) -> PredictionResult:
        now = self._clock()
        key = prediction_key(subject_id, date_range)
        cached: Optional[PredictionResult] = self._cached(key)
        if cached is not None:
            if not cached.is_stale(now):
                return cached
            self.cache.invalidate(key)
        if not sleep_records:
            raise CloudInsufficientDataError("No sleep records to predict from")

        payload = self._anonymizer.payload(
            subject_id, now,
            sleep_records=sleep_records,
            feeding_records=feeding_records,
            activities=activities,
        )
        data = await self._call(credential, build_prediction_prompt(payload))
        result = convert.prediction_result_from_response(
            data,
            subject_id,
            len(sleep_records) + len(feeding_records) + len(activities),
            len({r.start_time.date() for r in sleep_records}),
            now,
        )
        self.cache.put(key, result, self.prediction_ttl, expires_at=result.valid_until)
        return result
