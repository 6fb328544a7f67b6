"""
Background worker for the lead cascade.

Usage:
    python -m app.worker

Runs the SLA sweep and the queued notification deliveries every
CASCADE_SWEEP_INTERVAL_SECONDS, and sends the daily cascade summary at
CASCADE_DAILY_SUMMARY_HOUR (UTC).
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging
from datetime import date, datetime

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.db.types import utcnow
from app.jobs.registry import resolve_job_handler
from app.services import cascade_metrics_service, job_service
from app.services.cascade_sweeper import get_sweeper

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def maybe_send_daily_summary(now: datetime, last_sent_on: date | None) -> date | None:
    """
    Send the daily summary once per UTC day, at or after the configured hour.

    Returns the date the summary was last sent (unchanged when nothing was sent).
    """
    hour = settings.CASCADE_DAILY_SUMMARY_HOUR
    if hour < 0 or now.hour < hour or last_sent_on == now.date():
        return last_sent_on

    with SessionLocal() as db:
        cascade_metrics_service.send_daily_summary(db, now=now)
    return now.date()


async def run_sweep_once() -> None:
    """One sweep tick; failures are logged and retried on the next tick."""
    try:
        await asyncio.to_thread(get_sweeper().run)
    except Exception:
        logger.exception(
            "Cascade sweep failed",
            extra=build_log_context(route="worker", method="background"),
        )


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info("Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts)
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def process_pending_jobs(limit: int | None = None) -> int:
    """Run the due jobs once; returns how many completed."""
    completed = 0
    with SessionLocal() as db:
        jobs = job_service.get_pending_jobs(db, limit=limit or settings.JOB_BATCH_SIZE)
        if jobs:
            logger.info("Found %s pending jobs", len(jobs))

        for job in jobs:
            try:
                job_service.mark_job_running(db, job)
                await process_job(db, job)
                job_service.mark_job_completed(db, job)
                completed += 1
                logger.info("Job %s completed successfully", job.id)
            except Exception as e:
                db.rollback()
                job_service.mark_job_failed(db, job, str(e) or type(e).__name__)
                logger.error("Job %s failed: %s", job.id, type(e).__name__)
    return completed


async def worker_loop() -> None:
    """Main worker loop - sweeps expired assignments and drains the job queue."""
    logger.info(
        "Worker starting (sweep interval: %ss, batch size: %s)",
        settings.CASCADE_SWEEP_INTERVAL_SECONDS,
        settings.CASCADE_SWEEP_BATCH_SIZE,
    )

    last_summary_on: date | None = None
    while True:
        await run_sweep_once()

        try:
            await process_pending_jobs()
        except Exception:
            logger.exception("Job processing failed")

        try:
            last_summary_on = await asyncio.to_thread(
                maybe_send_daily_summary, utcnow(), last_summary_on
            )
        except Exception:
            logger.exception("Daily cascade summary failed")

        await asyncio.sleep(settings.CASCADE_SWEEP_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
