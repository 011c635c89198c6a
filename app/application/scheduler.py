"""
Background scheduler: runs periodic jobs inside the FastAPI process.

Jobs:
  - Daily statement refresh (DAILY_REFRESH_HOUR, local timezone)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_daily_refresh():
    from app.infrastructure.db.session import get_session_factory
    from app.application.daily_guard import run_daily_refresh

    Session = get_session_factory()
    db = Session()
    try:
        run_daily_refresh(db)
    except Exception:
        logger.exception("Daily refresh job failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    cfg = get_settings()
    scheduler.add_job(
        _run_daily_refresh,
        CronTrigger(hour=cfg.DAILY_REFRESH_HOUR, minute=0, timezone=cfg.TIMEZONE),
        id="daily_refresh",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: daily_refresh (%02d:00 %s)", cfg.DAILY_REFRESH_HOUR, cfg.TIMEZONE)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
