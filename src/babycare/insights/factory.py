"""Build a fully wired AIEngine from Settings."""
from datetime import timedelta
from typing import Optional

from babycare.ai.claude_client import ClaudeClient
from babycare.cloud.anonymizer import DataAnonymizer
from babycare.cloud.cache import TTLCache
from babycare.cloud.gateway import CloudAnalysisGateway
from babycare.cloud.usage_limiter import UsageLimiter
from babycare.config import Settings, get_settings
from babycare.insights.ai_engine import AIEngine
from babycare.insights.preferences import (
    AnalysisPreferences,
    PreferencesChannel,
    StaticConnectivity,
)
from babycare.store.base import RecordStore

_ai_engine: Optional[AIEngine] = None


def build_ai_engine(settings: Settings, store: Optional[RecordStore] = None) -> AIEngine:
    """
    Wire store, cache, limiter, gateway and preferences together.

    Args:
        settings: configuration to build from
        store: record store to read from; defaults to the SQL store on
            settings.database_url
    """
    if store is None:
        from babycare.db.engine import get_engine
        from babycare.store.sql import SqlRecordStore

        store = SqlRecordStore(get_engine(settings.database_url))

    def client_factory(api_key: str) -> ClaudeClient:
        return ClaudeClient(
            api_key=api_key,
            model=settings.claude_model,
            timeout=settings.cloud_timeout_seconds,
        )

    gateway = CloudAnalysisGateway(
        cache=TTLCache(max_entries=settings.cache_max_entries),
        limiter=UsageLimiter(
            max_per_hour=settings.max_requests_per_hour,
            max_per_day=settings.max_requests_per_day,
        ),
        anonymizer=DataAnonymizer(settings.device_salt),
        client_factory=client_factory,
        analysis_ttl=timedelta(seconds=settings.analysis_cache_ttl_seconds),
        prediction_ttl=timedelta(seconds=settings.prediction_cache_ttl_seconds),
    )
    preferences = PreferencesChannel(AnalysisPreferences(
        cloud_enabled=settings.cloud_analysis_enabled,
        wifi_only=settings.cloud_wifi_only,
        api_key=settings.anthropic_api_key,
    ))
    return AIEngine(
        store=store,
        preferences=preferences,
        connectivity=StaticConnectivity(settings.network_available, settings.network_is_wifi),
        gateway=gateway,
        day_start_hour=settings.day_start_hour,
        day_end_hour=settings.day_end_hour,
    )


def get_ai_engine() -> AIEngine:
    """FastAPI dependency: the process-wide engine, built on first use."""
    global _ai_engine
    if _ai_engine is None:
        _ai_engine = build_ai_engine(get_settings())
    return _ai_engine
