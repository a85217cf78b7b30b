"""
APScheduler job runner for periodic fetch + process.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from crm_intake.config import settings
from crm_intake.core.logging import get_logger

log = get_logger(__name__)

# Global scheduler instance
_scheduler: BackgroundScheduler | None = None


def intake_job():
    """Scheduled job: fetch new mail, then process one batch."""
    from crm_intake.processors.fetch import MailFetcher
    from crm_intake.processors.pipeline import MessagePipeline

    log.info("scheduled_job_starting", job="intake")
    try:
        fetch_stats = MailFetcher().fetch_and_store(since_days=settings.scheduler_fetch_days)
        log.info("scheduled_fetch_complete", **fetch_stats)
    except Exception as e:
        log.error("scheduled_job_error", job="intake", stage="fetch", error=str(e))

    try:
        stats = MessagePipeline().process_unprocessed_batch()
        log.info("scheduled_job_complete", job="intake", **stats)
    except Exception as e:
        log.error("scheduled_job_error", job="intake", stage="process", error=str(e))


def start_scheduler(interval_minutes: int | None = None) -> BackgroundScheduler:
    """
    Start the background scheduler.

    Args:
        interval_minutes: How often to run the intake job (default from settings)

    Returns:
        The scheduler instance
    """
    global _scheduler

    if _scheduler is not None:
        log.warning("scheduler_already_running")
        return _scheduler

    interval = interval_minutes or settings.scheduler_interval_minutes
    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        intake_job,
        trigger=IntervalTrigger(minutes=interval),
        id="intake",
        name="Fetch and process inbound mail",
        replace_existing=True,
    )
    _scheduler.start()
    log.info("scheduler_started", interval_minutes=interval)

    return _scheduler


def stop_scheduler():
    """Stop the background scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("scheduler_stopped")


def get_scheduler() -> BackgroundScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
