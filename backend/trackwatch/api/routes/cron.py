"""
Cron trigger for the daily notification run (for hosts that call a URL instead of
relying on the in-process scheduler). Send "Authorization: Bearer <CRON_SECRET>".
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from trackwatch.config import settings
from trackwatch.core.errors import TrackwatchError, app_error_to_http
from trackwatch.db.session import get_db
from trackwatch.scheduler.daily_job import run_daily

router = APIRouter()
logger = logging.getLogger(__name__)


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=503, detail="CRON_SECRET is not configured")
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/daily", dependencies=[Depends(require_cron_secret)])
def cron_daily(db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return run_daily(db)
    except TrackwatchError as e:
        logger.exception("Daily cron failed: %s", e)
        raise app_error_to_http(e) from e
