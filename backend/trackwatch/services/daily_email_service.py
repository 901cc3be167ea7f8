"""
Daily outbox: one daily_emails row per user per day.

Phase 1 owns mapper_content, Phase 2 owns driver_content; each save leaves the other
field as it is. A concurrent first insert loses on the unique key; the caller's retry
then finds the row and updates it.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from trackwatch.core.errors import MissingCredentialsError
from trackwatch.models.daily_email import DailyEmail
from trackwatch.services.formatting import compose_daily_email
from trackwatch.services.leaderboard_cache_service import utc_today

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SENT = "sent"


def _save_content(db: Session, username: str, email: str, field: str, content: str, day: date) -> DailyEmail:
    try:
        row = (
            db.query(DailyEmail)
            .filter(DailyEmail.username == username, DailyEmail.email_date == day)
            .first()
        )
        if row is None:
            row = DailyEmail(username=username, email=email, email_date=day, status=STATUS_PENDING)
            db.add(row)
        else:
            row.email = email or row.email
        setattr(row, field, content)
        db.commit()
        return row
    except Exception:
        db.rollback()
        raise


def save_mapper_content(db: Session, username: str, email: str, content: str, *, day: date | None = None) -> DailyEmail:
    return _save_content(db, username, email, "mapper_content", content, day or utc_today())


def save_driver_content(db: Session, username: str, email: str, content: str, *, day: date | None = None) -> DailyEmail:
    return _save_content(db, username, email, "driver_content", content, day or utc_today())


def get_daily_email(db: Session, username: str, day: date | None = None) -> DailyEmail | None:
    return (
        db.query(DailyEmail)
        .filter(DailyEmail.username == username, DailyEmail.email_date == (day or utc_today()))
        .first()
    )


def get_pending_emails(db: Session, day: date | None = None) -> list[DailyEmail]:
    return (
        db.query(DailyEmail)
        .filter(DailyEmail.email_date == (day or utc_today()), DailyEmail.status == STATUS_PENDING)
        .order_by(DailyEmail.id)
        .all()
    )


def mark_sent(db: Session, row: DailyEmail) -> None:
    row.status = STATUS_SENT
    row.sent_at = datetime.now(timezone.utc)
    db.commit()


def run_send_phase(
    db: Session,
    *,
    day: date | None = None,
    send: Callable[[str, str, str], str] | None = None,
) -> dict[str, Any]:
    """
    Email every pending outbox row of the day once, then mark it sent. Rows with no
    content are skipped (and stay pending). A failed send is logged; the row stays
    pending for a later run.
    """
    if send is None:
        from trackwatch.services.email_notify import is_configured, send_email

        if not is_configured():
            raise MissingCredentialsError("SMTP_USER or SMTP_PASSWORD not set; cannot run the send phase")
        send = send_email
    rows = get_pending_emails(db, day)
    sent = skipped = 0
    for row in rows:
        composed = compose_daily_email(row.username, row.mapper_content, row.driver_content)
        if composed is None:
            skipped += 1
            continue
        subject, body = composed
        try:
            message_id = send(row.email, subject, body)
        except Exception as e:
            logger.exception("Sending daily email to %s failed: %s", row.username, e)
            continue
        mark_sent(db, row)
        sent += 1
        logger.info("Daily email for %s sent (%s)", row.username, message_id)
    return {"emails_sent": sent, "emails_skipped": skipped, "total_processed": len(rows)}
