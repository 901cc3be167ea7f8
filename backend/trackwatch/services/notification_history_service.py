"""notification_history rows: what each phase did for each user on a given day."""
import logging
from datetime import date

from sqlalchemy.orm import Session

from trackwatch.models.notification_history import NotificationHistory
from trackwatch.services.leaderboard_cache_service import utc_today

logger = logging.getLogger(__name__)

TYPE_MAPPER_ALERT = "mapper_alert"
TYPE_DRIVER_NOTIFICATION = "driver_notification"

STATUS_SENT = "sent"
STATUS_NO_NEW_TIMES = "no_new_times"
STATUS_TECHNICAL_ERROR = "technical_error"


def log_notification(
    db: Session,
    username: str,
    notification_type: str,
    status: str,
    message: str,
    *,
    user_id: int | None = None,
    records_found: int = 0,
    day: date | None = None,
) -> None:
    """Best effort: a failed history write is logged and never fails the phase."""
    try:
        db.add(
            NotificationHistory(
                user_id=user_id,
                username=username,
                notification_type=notification_type,
                status=status,
                message=message,
                records_found=records_found,
                processing_date=day or utc_today(),
            )
        )
        db.commit()
    except Exception as e:
        logger.exception("Failed to write notification history for %s: %s", username, e)
        db.rollback()


def get_history(db: Session, username: str, *, limit: int = 50) -> list[NotificationHistory]:
    return (
        db.query(NotificationHistory)
        .filter(NotificationHistory.username == username)
        .order_by(NotificationHistory.created_at.desc(), NotificationHistory.id.desc())
        .limit(limit)
        .all()
    )
