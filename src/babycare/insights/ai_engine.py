"""
AIEngine: one entry point for sleep analysis, routine analysis and
prediction, whether the answer comes from the cloud or from this machine.

Routing per call:
  - cloud is attempted only if the user opted in, an API key is set, the
    network is up, and (when WiFi-only is on) we are on WiFi
  - any CloudError from that attempt is logged and the local analyzer runs
    on the same records instead; the caller never sees the cloud failure
  - record store errors are not cloud errors and propagate unchanged

The fallback is strictly sequential: the local path starts only after the
cloud call has failed. Cancelling the caller cancels the cloud await and
nothing else runs.

Store reads are blocking, so they run in the default thread pool executor.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from babycare.analysis.prediction import LOOKBACK_DAYS, PredictionEngine, PredictionResult
from babycare.analysis.records import DateRange, to_routine_activities
from babycare.analysis.routine import RoutinePatternResult, analyze_routine
from babycare.analysis.sleep_pattern import SleepPatternResult, analyze_sleep_pattern
from babycare.cloud.errors import CloudDisabledError, CloudError
from babycare.cloud.gateway import CloudAnalysisGateway
from babycare.insights.preferences import (
    AnalysisPreferences,
    ConnectivityMonitor,
    PreferencesChannel,
)
from babycare.store.base import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DAYS = 14

T = TypeVar("T")


class AIEngine:
    def __init__(
        self,
        store: RecordStore,
        preferences: PreferencesChannel,
        connectivity: ConnectivityMonitor,
        gateway: Optional[CloudAnalysisGateway] = None,
        day_start_hour: int = 6,
        day_end_hour: int = 20,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.preferences = preferences
        self.connectivity = connectivity
        self.gateway = gateway
        self.day_start_hour = day_start_hour
        self.day_end_hour = day_end_hour
        self._clock = clock
        self.predictor = PredictionEngine(store, day_start_hour, day_end_hour)
        preferences.subscribe(self._on_preferences_changed)

    # ── Routing ───────────────────────────────────────────────────────────────

    def cloud_permitted(self) -> bool:
        prefs = self.preferences.current
        if self.gateway is None or not prefs.cloud_enabled or not prefs.api_key:
            return False
        network = self.connectivity.status()
        if not network.connected:
            return False
        return network.on_wifi or not prefs.wifi_only

    def _on_preferences_changed(self, old: AnalysisPreferences, new: AnalysisPreferences) -> None:
        if self.gateway is None:
            return
        if not new.cloud_enabled or new.api_key != old.api_key:
            # Results fetched under another credential or opt-in must not be served
            self.gateway.cache.clear()
            self.gateway.forget_clients()

    async def _read(self, accessor: Callable[[str, DateRange], List[T]], subject_id: str,
                    date_range: DateRange) -> List[T]:
        """Run a blocking store read in the thread pool so the event loop stays free."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, accessor, subject_id, date_range)

    async def _try_cloud(self, operation: str, call: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run the cloud call if allowed. None means: use local analysis."""
        if not self.cloud_permitted():
            logger.debug("%s: cloud not permitted, using local analysis", operation)
            return None
        try:
            return await call()
        except CloudDisabledError:
            logger.debug("%s: cloud disabled, using local analysis", operation)
        except CloudError as exc:
            logger.warning(
                "%s: cloud analysis failed (%s: %s), falling back to local analysis",
                operation, type(exc).__name__, exc,
            )
        return None

    # ── Operations ────────────────────────────────────────────────────────────

    async def analyze_sleep(
        self,
        subject_id: str,
        date_range: Optional[DateRange] = None,
        now: Optional[datetime] = None,
    ) -> SleepPatternResult:
        now = now or self._clock()
        date_range = date_range or DateRange.trailing(DEFAULT_ANALYSIS_DAYS, now)
        records = await self._read(self.store.get_sleep_records, subject_id, date_range)

        result = await self._try_cloud(
            "sleep analysis",
            lambda: self.gateway.analyze_sleep(
                self.preferences.current.api_key, subject_id, date_range, records
            ),
        )
        if result is not None:
            return result
        return analyze_sleep_pattern(
            records, date_range, self.day_start_hour, self.day_end_hour, now=now
        )

    async def analyze_routine(
        self,
        subject_id: str,
        date_range: Optional[DateRange] = None,
        now: Optional[datetime] = None,
    ) -> RoutinePatternResult:
        now = now or self._clock()
        date_range = date_range or DateRange.trailing(DEFAULT_ANALYSIS_DAYS, now)
        activities = to_routine_activities(
            await self._read(self.store.get_sleep_records, subject_id, date_range),
            await self._read(self.store.get_feeding_records, subject_id, date_range),
            await self._read(self.store.get_activities, subject_id, date_range),
        )

        result = await self._try_cloud(
            "routine analysis",
            lambda: self.gateway.analyze_routine(
                self.preferences.current.api_key, subject_id, date_range, activities
            ),
        )
        if result is not None:
            return result
        return analyze_routine(activities, date_range, now=now)

    async def predict_next_sleep(
        self, subject_id: str, now: Optional[datetime] = None
    ) -> PredictionResult:
        now = now or self._clock()
        window = DateRange.trailing(LOOKBACK_DAYS, now)
        sleep_records = await self._read(self.store.get_sleep_records, subject_id, window)
        feeding_records = await self._read(self.store.get_feeding_records, subject_id, window)
        activities = await self._read(self.store.get_activities, subject_id, window)

        result = await self._try_cloud(
            "prediction",
            lambda: self.gateway.predict_next_sleep(
                self.preferences.current.api_key, subject_id, window,
                sleep_records, feeding_records, activities,
            ),
        )
        if result is not None and not result.is_stale(now):
            return result
        return self.predictor.predict_from_records(
            subject_id, sleep_records, feeding_records, activities, now
        )
