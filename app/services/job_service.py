"""Job service - background job scheduling and processing state."""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import JobStatus, JobType
from app.db.models import Job
from app.db.types import utcnow


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    if max_attempts is not None:
        job.max_attempts = max_attempts
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_pending_jobs(db: Session, limit: int = 10, now: datetime | None = None) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    now = now or utcnow()
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= now,
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id: UUID) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def list_jobs(
    db: Session,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs with optional filters, newest first."""
    query = db.query(Job)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
