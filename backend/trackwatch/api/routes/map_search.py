"""
Map search API: start a background crawl of a user's maps, then poll the job.

POST returns 202 with the job id right away; the crawl runs in the background.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from trackwatch.core.constants import DEFAULT_PERIOD
from trackwatch.core.errors import TrackwatchError, app_error_to_http
from trackwatch.db.session import get_db
from trackwatch.services.map_search import get_job, start_crawl

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", status_code=202)
def start_map_search(
    username: str = Query(..., min_length=1, max_length=64),
    period: str = Query(DEFAULT_PERIOD),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        job_id = start_crawl(db, username, period)
    except TrackwatchError as e:
        raise app_error_to_http(e) from e
    return {"job_id": job_id, "status": "pending"}


@router.get("/jobs/{job_id}")
def get_map_search_job(job_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    job = get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
