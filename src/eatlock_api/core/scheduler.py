"""Background scheduler for periodic upload cleanup."""

import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from eatlock_api.core.config import Settings, get_settings
from eatlock_api.services.storage import ImageStore
from eatlock_api.utils.dates import utc_now

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def run_upload_cleanup(images: ImageStore, retention_minutes: int) -> int:
    """
    Delete uploads older than the retention period.

    Called by APScheduler on the configured interval. Errors are logged
    and swallowed so one failed run does not stop the schedule.

    Returns:
        Number of deleted objects
    """
    cutoff = utc_now() - timedelta(minutes=retention_minutes)

    try:
        deleted = await images.delete_older_than(cutoff)
    except Exception as e:
        logger.exception(f"Upload cleanup error: {e}")
        return 0

    logger.info(f"Upload cleanup deleted {deleted} stale uploads")
    return deleted


def start_scheduler(
    images: ImageStore,
    settings: Settings | None = None,
) -> AsyncIOScheduler | None:
    """
    Start the background scheduler if cleanup is enabled.

    Args:
        images: Store to clean up
        settings: Optional settings instance

    Returns:
        Scheduler instance if started, None otherwise
    """
    global _scheduler

    settings = settings or get_settings()

    if not settings.upload_cleanup_enabled:
        logger.info("Upload cleanup is disabled")
        return None

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        run_upload_cleanup,
        trigger=IntervalTrigger(minutes=settings.upload_cleanup_interval_minutes),
        args=[images, settings.upload_retention_minutes],
        id="upload_cleanup",
        name="Stale upload cleanup",
        replace_existing=True,
    )
    _scheduler.start()

    logger.info(
        f"Scheduler started: upload cleanup every {settings.upload_cleanup_interval_minutes} min, "
        f"retention {settings.upload_retention_minutes} min"
    )

    return _scheduler


def stop_scheduler() -> None:
    """Stop the background scheduler if running."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    _scheduler = None


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
