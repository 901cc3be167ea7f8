"""
Daily notification run: Phase 1 (mapper alerts) for every alert, Phase 2 (driver
notifications) for every user with active driver subscriptions, then the send phase.

Users are independent: a failure is counted, logged as technical_error history by the
phase, and the run moves on to the next user.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from trackwatch.db.session import SessionLocal
from trackwatch.services.daily_email_service import run_send_phase
from trackwatch.services.driver_notification_service import (
    LeaderboardMemo,
    active_map_uids,
    list_driver_usernames,
    run_phase2,
)
from trackwatch.services.mapper_alert_service import list_alerts, run_phase1

logger = logging.getLogger(__name__)


def run_daily(
    db: Session,
    *,
    leaderboards: Any = None,
    catalog: Any = None,
    resolver: Any = None,
    send: Any = None,
    skip_send: bool = False,
    now: datetime | None = None,
    **phase_kwargs: Any,
) -> dict[str, Any]:
    """Phase 1, Phase 2, send (unless skip_send). Returns counts per phase."""
    if leaderboards is None:
        from trackwatch.services.nadeo import default_leaderboards as leaderboards
    now = now or datetime.now(timezone.utc)
    started = datetime.now(timezone.utc)

    phase1 = {"processed": 0, "errors": 0, "records_found": 0}
    for username, email in [(a.username, a.email) for a in list_alerts(db)]:
        try:
            result = run_phase1(
                db,
                username,
                email,
                leaderboards=leaderboards,
                catalog=catalog,
                resolver=resolver,
                now=now,
                **phase_kwargs,
            )
            phase1["processed"] += 1
            phase1["records_found"] += result.get("records_found", 0)
        except Exception as e:
            phase1["errors"] += 1
            logger.warning("Phase 1 for %s failed (run continues): %s", username, e)

    phase2 = {"processed": 0, "errors": 0, "leaderboards_fetched": 0}
    phase2_kwargs = {"retry": phase_kwargs["retry"]} if "retry" in phase_kwargs else {}
    memo = LeaderboardMemo(leaderboards)
    memo.prefetch(active_map_uids(db))
    for username, email in list_driver_usernames(db):
        try:
            run_phase2(db, username, email, memo=memo, now=now, **phase2_kwargs)
            phase2["processed"] += 1
        except Exception as e:
            phase2["errors"] += 1
            logger.warning("Phase 2 for %s failed (run continues): %s", username, e)
    phase2["leaderboards_fetched"] = memo.fetch_count

    send_result = None if skip_send else run_send_phase(db, day=now.date(), send=send)
    elapsed = (datetime.now(timezone.utc) - started).total_seconds()
    logger.info(
        "Daily run done in %.1fs: phase1=%s phase2=%s send=%s", elapsed, phase1, phase2, send_result
    )
    return {"phase1": phase1, "phase2": phase2, "send": send_result, "duration_seconds": round(elapsed, 1)}


def run_daily_job() -> None:
    """Scheduler entry point: own session, errors logged at the job boundary."""
    db = SessionLocal()
    try:
        run_daily(db)
    except Exception as e:
        db.rollback()
        logger.exception("Daily notification job failed: %s", e)
    finally:
        db.close()
