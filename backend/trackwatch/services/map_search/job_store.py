"""
map_search_jobs persistence. set_job_status is the only mutator after creation and
only lets a job move forward: pending -> processing -> completed | failed.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from trackwatch.core.errors import InvalidJobTransitionError
from trackwatch.models.map_search_job import MapSearchJob

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

_STATUS_RANK = {STATUS_PENDING: 0, STATUS_PROCESSING: 1, STATUS_COMPLETED: 2, STATUS_FAILED: 2}
FINISHED_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)
UNKNOWN_ERROR = "Unknown error"


def job_to_dict(job: MapSearchJob) -> dict[str, Any]:
    return {
        "job_id": job.job_id,
        "username": job.username,
        "period": job.period,
        "status": job.status,
        "result": job.result,
        "error_message": job.error_message,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
    }


def create_job(db: Session, job_id: str, username: str, period: str) -> MapSearchJob:
    job = MapSearchJob(job_id=job_id, username=username, period=period, status=STATUS_PENDING)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: str) -> dict[str, Any] | None:
    """Snapshot of the job, or None if unknown."""
    job = db.query(MapSearchJob).filter(MapSearchJob.job_id == job_id).first()
    return job_to_dict(job) if job else None


def set_job_status(
    db: Session,
    job_id: str,
    status: str,
    *,
    result: Any = None,
    error_message: str | None = None,
) -> MapSearchJob:
    if status not in _STATUS_RANK:
        raise InvalidJobTransitionError(f"Unknown job status {status!r}")
    job = db.query(MapSearchJob).filter(MapSearchJob.job_id == job_id).first()
    if job is None:
        raise InvalidJobTransitionError(f"Job {job_id} does not exist")
    if _STATUS_RANK[status] <= _STATUS_RANK[job.status]:
        raise InvalidJobTransitionError(f"Job {job_id}: cannot move from {job.status} to {status}")
    if status == STATUS_COMPLETED:
        if result is None:
            raise InvalidJobTransitionError(f"Job {job_id}: completed requires a result")
        job.result = result
    if status == STATUS_FAILED:
        job.error_message = error_message or UNKNOWN_ERROR
    job.status = status
    job.updated_at = datetime.now(timezone.utc)
    db.commit()
    return job


def claim_job(db: Session, job_id: str) -> bool:
    """pending -> processing as one conditional UPDATE. False if someone else got there first."""
    updated = (
        db.query(MapSearchJob)
        .filter(MapSearchJob.job_id == job_id, MapSearchJob.status == STATUS_PENDING)
        .update(
            {MapSearchJob.status: STATUS_PROCESSING, MapSearchJob.updated_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def list_stale_pending_jobs(db: Session, older_than_minutes: int) -> list[MapSearchJob]:
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    return (
        db.query(MapSearchJob)
        .filter(MapSearchJob.status == STATUS_PENDING, MapSearchJob.created_at < cutoff)
        .order_by(MapSearchJob.created_at)
        .all()
    )


def prune_finished_jobs(db: Session, older_than_days: int) -> int:
    """Delete completed/failed jobs last updated more than older_than_days ago."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    deleted = (
        db.query(MapSearchJob)
        .filter(MapSearchJob.status.in_(FINISHED_STATUSES), MapSearchJob.updated_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Pruned %s finished map search jobs older than %s days", deleted, older_than_days)
    return deleted
