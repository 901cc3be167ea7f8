"""Admin: override an alert's mode (accurate / inaccurate). Protected like /cron."""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from trackwatch.api.routes.cron import require_cron_secret
from trackwatch.core.errors import TrackwatchError, app_error_to_http
from trackwatch.db.session import get_db
from trackwatch.services.mapper_alert_service import set_alert_type

router = APIRouter(dependencies=[Depends(require_cron_secret)])


class AlertTypeBody(BaseModel):
    alert_type: str
    lock: bool = True


@router.put("/alerts/{username}/type")
def override_alert_type(username: str, body: AlertTypeBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        alert = set_alert_type(db, username, body.alert_type, lock=body.lock)
    except TrackwatchError as e:
        raise app_error_to_http(e) from e
    return {"username": alert.username, "alert_type": alert.alert_type, "alert_type_locked": alert.alert_type_locked}
