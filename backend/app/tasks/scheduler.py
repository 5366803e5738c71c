"""APScheduler setup for periodic cache and rate-limiter maintenance."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import settings

logger = logging.getLogger(__name__)

_scheduler: BackgroundScheduler | None = None


def _run_sweep():
    from app.services.rate_limiter import limiter
    from app.services.weather_cache import purge_expired
    try:
        purge_expired()
        limiter.purge()
    except Exception as e:
        logger.error("Sweep job failed: %s", e)


def start_scheduler():
    global _scheduler
    _scheduler = BackgroundScheduler()

    _scheduler.add_job(
        _run_sweep,
        "interval",
        minutes=settings.cache_sweep_interval,
        id="cache_sweep",
        name="Expired cache and rate-limit sweep",
        max_instances=1,
    )

    _scheduler.start()
    logger.info("Scheduler started: cache sweep every %d min", settings.cache_sweep_interval)


def stop_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
        _scheduler = None


def is_running() -> bool:
    return _scheduler is not None and _scheduler.running
