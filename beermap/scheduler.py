from datetime import UTC, datetime
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from beermap.config import Settings
from beermap.pipeline import PipelineRunner


logger = logging.getLogger(__name__)


def _run_daily_job(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    run_key = f"scheduled-{datetime.now(UTC).date().isoformat()}"

    runner = PipelineRunner(settings, session_factory)
    result = runner.run(run_key=run_key, trigger_source="scheduled")
    context = {
        "run_key": result.run_key,
        "status": result.status,
        "variants_failed": result.failed_variants,
        "reused_existing_run": result.reused_existing_run,
    }
    if result.status == "failed":
        logger.error("scheduled job run failed", extra=context)
        return
    logger.info("scheduled job run completed", extra=context)


def start_scheduler(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_daily_job,
        "cron",
        args=[settings, session_factory],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_beermap_job",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "source_path": settings.source_path,
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        _run_daily_job(settings, session_factory)

    scheduler.start()
