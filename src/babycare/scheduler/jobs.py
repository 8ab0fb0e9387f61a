"""
APScheduler jobs for cloud cache upkeep.

Expired entries are dropped lazily when looked up; the sweep job clears out
the ones nobody asks for again so a long-running process doesn't hold them
until LRU eviction gets round to it.

The scheduler runs inside the API process (started from the app lifespan).
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from babycare.cloud.cache import CacheStore
from babycare.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(cache: CacheStore) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        cache: the cloud result cache to sweep.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _sweep_cache,
        trigger="interval",
        minutes=settings.cache_sweep_minutes,
        id="cache_sweep",
        replace_existing=True,
        kwargs={"cache": cache},
    )

    return scheduler


async def _sweep_cache(cache: CacheStore) -> int:
    """Periodic job: remove expired cloud results. Returns how many went."""
    removed = cache.sweep()
    if removed:
        logger.info("Cache sweep removed %d expired entries", removed)
    return removed
