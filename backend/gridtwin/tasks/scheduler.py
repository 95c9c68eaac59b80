"""APScheduler setup for the periodic ERCOT live-data pull."""

import asyncio
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from gridtwin.config import settings
from gridtwin.services.live_store import LiveDataStore

logger = logging.getLogger(__name__)

_scheduler: BackgroundScheduler | None = None


def _run_live_refresh(store: LiveDataStore):
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(store.refresh())
    except Exception as e:
        logger.error("Live data refresh job failed: %s", e)
    finally:
        loop.close()


def start_scheduler(store: LiveDataStore):
    global _scheduler
    _scheduler = BackgroundScheduler()

    _scheduler.add_job(
        _run_live_refresh,
        "interval",
        minutes=settings.live_refresh_interval,
        args=[store],
        id="live_refresh",
        name="ERCOT live data refresh",
        max_instances=1,
    )

    _scheduler.start()
    logger.info("Scheduler started: live data every %d min", settings.live_refresh_interval)


def stop_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
        _scheduler = None
