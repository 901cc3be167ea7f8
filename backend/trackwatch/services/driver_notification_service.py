"""
Phase 2: drivers tracking their own top-5 standing on chosen maps.

A subscription can only be created while the user holds a top-5 position on the map.
Each run looks the user up in the map's current top 100 (by account id, then login):
  worsened  (worse rank, even with a faster time) -> "beaten" notice; inactive once outside top 5
  improved  (better rank, or same rank and faster) -> "improved" notice, store new rank and time
  unchanged or not on the leaderboard             -> nothing
Every examined subscription gets last_checked_at stamped, change or not.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from trackwatch.core.constants import DRIVER_TOP_POSITIONS, LEADERBOARD_TOP_LENGTH, VALIDATION_LOOKUP_TIMEOUT_SECONDS
from trackwatch.core.errors import DriverNotificationError
from trackwatch.core.retry import SCHEDULER_RETRY, RetryPolicy
from trackwatch.models.driver_notification import DriverNotification
from trackwatch.models.user import User
from trackwatch.services.daily_email_service import save_driver_content
from trackwatch.services.formatting import format_driver_beaten, format_driver_improved
from trackwatch.services.leaderboard_cache_service import get_leaderboard_snapshot
from trackwatch.services.nadeo.leaderboards import LeaderboardApi
from trackwatch.services.nadeo.types import LeaderboardEntry
from trackwatch.services.notification_history_service import (
    STATUS_NO_NEW_TIMES,
    STATUS_SENT,
    STATUS_TECHNICAL_ERROR,
    TYPE_DRIVER_NOTIFICATION,
    log_notification,
)

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"


class LeaderboardMemo:
    """
    Top-100 per map, fetched at most once per run and shared by every user tracking the
    map. A failed fetch is remembered and re-raised for each user of that map.
    """

    def __init__(self, leaderboards: LeaderboardApi) -> None:
        self._leaderboards = leaderboards
        self._entries: dict[str, list[LeaderboardEntry]] = {}
        self._errors: dict[str, Exception] = {}
        self.fetch_count = 0

    def get(self, map_uid: str) -> list[LeaderboardEntry]:
        if map_uid in self._errors:
            raise self._errors[map_uid]
        if map_uid not in self._entries:
            self.fetch_count += 1
            try:
                self._entries[map_uid] = self._leaderboards.get_top(map_uid, length=LEADERBOARD_TOP_LENGTH)
            except Exception as e:
                self._errors[map_uid] = e
                raise
        return self._entries[map_uid]

    def prefetch(self, map_uids: list[str]) -> None:
        """Fetch distinct maps up front; failures stay in the memo for the affected users."""
        for uid in dict.fromkeys(map_uids):
            try:
                self.get(uid)
            except Exception as e:
                logger.warning("Driver leaderboard fetch failed for %s: %s", uid, e)


def _get_user(db: Session, username: str) -> User | None:
    return db.query(User).filter(User.username == username).first()


def find_user_entry(entries: list[LeaderboardEntry], user: User) -> LeaderboardEntry | None:
    if user.tm_account_id:
        for e in entries:
            if e.get("account_id") == user.tm_account_id:
                return e
    login = (user.tm_username or "").strip().lower()
    if login:
        for e in entries:
            if (e.get("login") or "").strip().lower() == login:
                return e
    return None


def list_driver_notifications(db: Session, user_id: int) -> list[DriverNotification]:
    return (
        db.query(DriverNotification)
        .filter(DriverNotification.user_id == user_id)
        .order_by(DriverNotification.created_at, DriverNotification.id)
        .all()
    )


def delete_driver_notification(db: Session, user_id: int, notification_id: int) -> bool:
    deleted = (
        db.query(DriverNotification)
        .filter(DriverNotification.id == notification_id, DriverNotification.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted == 1


def create_driver_notification(
    db: Session,
    username: str,
    map_uid: str,
    map_name: str,
    *,
    leaderboards: LeaderboardApi | None = None,
) -> DriverNotification:
    """Track map_uid for username. Requires a current top-5 position."""
    if leaderboards is None:
        from trackwatch.services.nadeo import default_leaderboards as leaderboards
    map_uid = (map_uid or "").strip()
    if not map_uid:
        raise DriverNotificationError("map_uid is required")
    user = _get_user(db, username)
    if user is None:
        raise DriverNotificationError(f"Unknown user {username}")
    if not user.tm_account_id:
        raise DriverNotificationError("Link your Trackmania account before tracking maps")
    exists = (
        db.query(DriverNotification)
        .filter(DriverNotification.user_id == user.id, DriverNotification.map_uid == map_uid)
        .first()
    )
    if exists is not None:
        raise DriverNotificationError("You already track this map")
    top = leaderboards.get_top(
        map_uid,
        length=DRIVER_TOP_POSITIONS,
        only_world=False,
        timeout=VALIDATION_LOOKUP_TIMEOUT_SECONDS,
    )
    entry = next((e for e in top if e.get("account_id") == user.tm_account_id), None)
    if entry is None or entry["position"] > DRIVER_TOP_POSITIONS:
        raise DriverNotificationError(f"You must hold a top {DRIVER_TOP_POSITIONS} position on this map")
    now = datetime.now(timezone.utc)
    row = DriverNotification(
        user_id=user.id,
        map_uid=map_uid,
        map_name=(map_name or "").strip() or map_uid,
        current_position=entry["position"],
        current_score=entry.get("score") or 0,
        status=STATUS_ACTIVE,
        is_active=True,
        last_checked_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Driver %s now tracks %s at #%s", username, map_uid, entry["position"])
    return row


def list_driver_usernames(db: Session) -> list[tuple[str, str]]:
    """(username, email) of users with at least one active driver subscription."""
    rows = (
        db.query(User.username, User.email)
        .join(DriverNotification, DriverNotification.user_id == User.id)
        .filter(DriverNotification.is_active.is_(True), DriverNotification.status == STATUS_ACTIVE)
        .group_by(User.id, User.username, User.email)
        .order_by(func.min(DriverNotification.id))
        .all()
    )
    return [(r.username, r.email) for r in rows]


def active_map_uids(db: Session) -> list[str]:
    rows = (
        db.query(DriverNotification.map_uid)
        .filter(DriverNotification.is_active.is_(True), DriverNotification.status == STATUS_ACTIVE)
        .distinct()
        .all()
    )
    return sorted(r.map_uid for r in rows)


def _stamp_forward(previous: datetime | None, now: datetime) -> datetime:
    if previous is None:
        return now
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    return now if now > previous else previous + timedelta(microseconds=1)


def check_subscription(
    sub: DriverNotification,
    entries: list[LeaderboardEntry],
    user: User,
    *,
    snapshot: list[dict[str, Any]] | None = None,
) -> str | None:
    """Apply the live leaderboard to sub (not committed). Returns notice text or None."""
    entry = find_user_entry(entries, user)
    if entry is None:
        return None
    new_position = entry["position"]
    new_score = entry.get("score")
    old_position = sub.current_position
    faster = new_score is not None and (sub.current_score is None or new_score < sub.current_score)
    if new_position > old_position:
        sub.current_position = new_position
        if faster:
            sub.current_score = new_score
        still_tracked = new_position <= DRIVER_TOP_POSITIONS
        if not still_tracked:
            sub.status = STATUS_INACTIVE
        return format_driver_beaten(sub.map_name, old_position, new_position, still_tracked)
    if new_position == old_position and not faster:
        return None
    sub.current_position = new_position
    if faster:
        sub.current_score = new_score
    return format_driver_improved(sub.map_name, old_position, new_position, new_score, snapshot)


def run_phase2(
    db: Session,
    username: str,
    email: str | None = None,
    *,
    leaderboards: LeaderboardApi | None = None,
    memo: LeaderboardMemo | None = None,
    retry: RetryPolicy = SCHEDULER_RETRY,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Driver notifications for one user. Writes driver_content to today's outbox row when
    there is something to say. A leaderboard fetch failure fails the user's run
    (logged as technical_error and re-raised).
    """
    if memo is None:
        if leaderboards is None:
            from trackwatch.services.nadeo import default_leaderboards as leaderboards
        memo = LeaderboardMemo(leaderboards)
    now = now or datetime.now(timezone.utc)
    user = _get_user(db, username)
    if user is None:
        return {"username": username, "skipped": True, "notifications_processed": 0}
    email = email or user.email
    user_id = user.id
    subs = (
        db.query(DriverNotification)
        .filter(
            DriverNotification.user_id == user.id,
            DriverNotification.is_active.is_(True),
            DriverNotification.status == STATUS_ACTIVE,
        )
        .order_by(DriverNotification.id)
        .all()
    )
    try:
        notices: list[str] = []
        for sub in subs:
            entries = memo.get(sub.map_uid)
            snapshot = get_leaderboard_snapshot(db, sub.map_uid, now.date())
            notice = check_subscription(sub, entries, user, snapshot=snapshot)
            if notice:
                notices.append(notice)
        for sub in subs:
            sub.last_checked_at = _stamp_forward(sub.last_checked_at, now)
        db.commit()

        content = "\n\n".join(notices)
        if content:
            retry.run(lambda: save_driver_content(db, username, email, content, day=now.date()), name="outbox write")
            log_notification(
                db,
                username,
                TYPE_DRIVER_NOTIFICATION,
                STATUS_SENT,
                f"{len(notices)} position change(s)",
                user_id=user_id,
                records_found=len(notices),
                day=now.date(),
            )
        else:
            log_notification(
                db,
                username,
                TYPE_DRIVER_NOTIFICATION,
                STATUS_NO_NEW_TIMES,
                "No position changes",
                user_id=user_id,
                day=now.date(),
            )
        return {
            "username": username,
            "notifications_processed": len(subs),
            "changes": len(notices),
            "content": content,
        }
    except Exception as e:
        db.rollback()
        logger.exception("Phase 2 failed for %s: %s", username, e)
        log_notification(
            db,
            username,
            TYPE_DRIVER_NOTIFICATION,
            STATUS_TECHNICAL_ERROR,
            f"Driver notification failed: {e}",
            user_id=user_id,
            day=now.date(),
        )
        raise
