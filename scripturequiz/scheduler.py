import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scripturequiz.config import settings
from scripturequiz.database import db
from scripturequiz.dependencies import build_maintenance_service
from scripturequiz.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


def run_maintenance():
    """
    Scheduled sweep of stale attempts plus the saved-answer purge.
    Failures are logged; the next run tries again.
    """
    now = utc_now()
    try:
        result = build_maintenance_service(db).run(now)
        sweep = result["sweep"]
        logger.info(
            f"[{now.isoformat()}] Maintenance completed. {sweep.timed_out} timed out, "
            f"{sweep.abandoned} abandoned, {len(sweep.errors)} errors, "
            f"{result['answers_cleared']} answer sets cleared."
        )
    except Exception as e:
        logger.error(f"Error during maintenance run: {e}")


def start_scheduler(interval_minutes: Optional[int] = None) -> AsyncIOScheduler:
    """
    Initialize and start the periodic maintenance job.
    """
    interval = interval_minutes or settings.maintenance_interval_minutes
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_maintenance,
        trigger=IntervalTrigger(minutes=interval),
        id="stale_attempt_sweep",
        name="Time out stale quiz attempts",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Maintenance scheduler started, sweeping every {interval} minutes.")

    return scheduler


def shutdown_scheduler(scheduler: Optional[AsyncIOScheduler]):
    """
    Gracefully shutdown the scheduler.
    """
    if scheduler:
        scheduler.shutdown()
        logger.info("Maintenance scheduler shut down.")
