"""Driver notifications: track your own top-5 standing on a map."""
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from trackwatch.core.errors import TrackwatchError, app_error_to_http
from trackwatch.db.session import get_db
from trackwatch.models.user import User
from trackwatch.services.driver_notification_service import (
    create_driver_notification,
    delete_driver_notification,
    list_driver_notifications,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class DriverNotificationBody(BaseModel):
    map_uid: str = Field(..., min_length=1, max_length=64)
    map_name: str = Field("", max_length=255)


def _user_or_404(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _to_dict(row) -> dict[str, Any]:
    return {
        "id": row.id,
        "map_uid": row.map_uid,
        "map_name": row.map_name,
        "current_position": row.current_position,
        "current_score": row.current_score,
        "status": row.status,
        "is_active": row.is_active,
        "last_checked_at": row.last_checked_at.isoformat() if row.last_checked_at else None,
    }


@router.get("/{username}/driver-notifications")
def list_notifications(username: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    user = _user_or_404(db, username)
    return {"notifications": [_to_dict(r) for r in list_driver_notifications(db, user.id)]}


@router.post("/{username}/driver-notifications", status_code=201)
def create_notification(username: str, body: DriverNotificationBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        row = create_driver_notification(db, username, body.map_uid, body.map_name)
    except TrackwatchError as e:
        raise app_error_to_http(e) from e
    return _to_dict(row)


@router.delete("/{username}/driver-notifications/{notification_id}")
def delete_notification(username: str, notification_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    user = _user_or_404(db, username)
    if not delete_driver_notification(db, user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"ok": True}
