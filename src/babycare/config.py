from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./babycare.db"

    # Cloud analysis
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-5"
    cloud_timeout_seconds: float = 30.0
    cloud_analysis_enabled: bool = False  # user opt-in
    cloud_wifi_only: bool = True
    network_available: bool = True
    network_is_wifi: bool = True
    device_salt: str = "babycare-device"

    # Day window used for the day/night split (local hours)
    day_start_hour: int = 6
    day_end_hour: int = 20

    analysis_cache_ttl_seconds: int = 3600
    prediction_cache_ttl_seconds: int = 1800
    cache_max_entries: int = 256
    cache_sweep_minutes: int = 10

    max_requests_per_hour: int = 10
    max_requests_per_day: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
