"""
Phase 1: new times on a mapper's maps.

Accurate mode (default, up to settings.max_maps_accurate maps): walk the catalog, fetch
every map's leaderboard, keep entries from the last 24h that pass the alert's record
filter. Each fetched leaderboard is cached as today's snapshot.

Inaccurate mode (many maps): probe the rank a sentinel score would get on each map and
compare it with the stored baseline. Only maps whose rank moved get a full leaderboard
fetch. New maps are baselined silently. When more maps moved (or are new) than
settings.inaccurate_change_cap, the run reports a count only and fetches nothing.

An accurate alert whose catalog grows past the limit is promoted on the spot: alert_maps
and baselines are populated for all maps and nothing is reported for that run.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, NamedTuple

from sqlalchemy.orm import Session

from trackwatch.config import settings
from trackwatch.core.constants import (
    ALERT_TYPE_ACCURATE,
    ALERT_TYPE_INACCURATE,
    ALERT_TYPES,
    MAP_FETCH_DELAY_SECONDS,
    MAPPER_ALERT_PERIOD,
)
from trackwatch.core.errors import InvalidInputError
from trackwatch.core.retry import SCHEDULER_RETRY, RetryPolicy
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.services.daily_email_service import save_mapper_content
from trackwatch.services.formatting import (
    MapRecords,
    account_ids_to_resolve,
    format_new_records,
    format_overflow_summary,
)
from trackwatch.services.leaderboard_cache_service import save_leaderboard_snapshot
from trackwatch.services.map_position_service import (
    PositionDiff,
    apply_position_probes,
    clear_alert_maps,
    seed_missing_baselines,
    sync_alert_maps,
)
from trackwatch.services.nadeo.leaderboards import LeaderboardApi, apply_record_filter, filter_by_period
from trackwatch.services.nadeo.types import CatalogMap
from trackwatch.services.notification_history_service import (
    STATUS_NO_NEW_TIMES,
    STATUS_SENT,
    STATUS_TECHNICAL_ERROR,
    TYPE_MAPPER_ALERT,
    log_notification,
)

logger = logging.getLogger(__name__)


class InaccurateOutcome(NamedTuple):
    records: list[MapRecords]
    diff: PositionDiff
    overflow: bool


def get_alert(db: Session, username: str) -> AlertSubscription | None:
    return db.query(AlertSubscription).filter(AlertSubscription.username == username).first()


def list_alerts(db: Session) -> list[AlertSubscription]:
    return db.query(AlertSubscription).order_by(AlertSubscription.id).all()


def set_alert_type(db: Session, username: str, alert_type: str, *, lock: bool = True) -> AlertSubscription:
    """
    Admin override of the alert mode. lock=True keeps auto-promotion from changing it
    back. Leaving inaccurate mode drops the alert's map membership and unreferenced baselines.
    """
    if alert_type not in ALERT_TYPES:
        raise InvalidInputError(f"alert_type must be one of {', '.join(ALERT_TYPES)}")
    alert = get_alert(db, username)
    if alert is None:
        raise InvalidInputError(f"No alert for {username}")
    previous = alert.alert_type
    alert.alert_type = alert_type
    alert.alert_type_locked = lock
    if previous == ALERT_TYPE_INACCURATE and alert_type == ALERT_TYPE_ACCURATE:
        removed = clear_alert_maps(db, alert)
        logger.info("Alert %s switched to accurate; removed %s tracked maps", username, removed)
    db.commit()
    return alert


def _sleep_between(index: int, delay: float) -> None:
    if index and delay > 0:
        time.sleep(delay)


def _fetch_recent(
    leaderboards: LeaderboardApi,
    map_uid: str,
    record_filter: str,
    *,
    retry: RetryPolicy,
    now: datetime,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """(full leaderboard, entries from the last day passing record_filter)."""
    entries = retry.run(lambda: leaderboards.get_top(map_uid), name=f"leaderboard {map_uid}")
    recent = filter_by_period(entries, MAPPER_ALERT_PERIOD, now=now)
    return entries, apply_record_filter(recent, record_filter)


def collect_accurate_records(
    db: Session,
    alert: AlertSubscription,
    maps: list[CatalogMap],
    *,
    leaderboards: LeaderboardApi,
    retry: RetryPolicy = SCHEDULER_RETRY,
    delay: float = MAP_FETCH_DELAY_SECONDS,
    now: datetime | None = None,
) -> list[MapRecords]:
    now = now or datetime.now(timezone.utc)
    records: list[MapRecords] = []
    for i, m in enumerate(maps):
        _sleep_between(i, delay)
        try:
            entries, new_entries = _fetch_recent(leaderboards, m.map_uid, alert.record_filter, retry=retry, now=now)
        except Exception as e:
            logger.warning("Alert %s: skipping map %s: %s", alert.username, m.map_uid, e)
            continue
        save_leaderboard_snapshot(db, m.map_uid, entries, now.date())
        if new_entries:
            records.append(MapRecords(m.map_uid, m.name, new_entries))
    return records


def collect_inaccurate_records(
    db: Session,
    alert: AlertSubscription,
    maps: list[CatalogMap],
    *,
    leaderboards: LeaderboardApi,
    retry: RetryPolicy = SCHEDULER_RETRY,
    delay: float = MAP_FETCH_DELAY_SECONDS,
    now: datetime | None = None,
) -> InaccurateOutcome:
    now = now or datetime.now(timezone.utc)
    members = sync_alert_maps(db, alert, maps)
    names = {m.map_uid: (m.map_name or m.map_uid) for m in members}
    uids = [m.map_uid for m in members]
    probes = leaderboards.probe_positions(uids, retry=retry)
    diff = apply_position_probes(db, uids, probes, now=now)
    if diff.activity_count > settings.inaccurate_change_cap:
        logger.info(
            "Alert %s: %s changed and %s new maps exceed the cap of %s; count-only summary",
            alert.username,
            len(diff.changed),
            len(diff.initialized),
            settings.inaccurate_change_cap,
        )
        return InaccurateOutcome([], diff, True)
    records: list[MapRecords] = []
    for i, changed in enumerate(diff.changed):
        _sleep_between(i, delay)
        try:
            _entries, new_entries = _fetch_recent(leaderboards, changed.map_uid, alert.record_filter, retry=retry, now=now)
        except Exception as e:
            logger.warning("Alert %s: skipping changed map %s: %s", alert.username, changed.map_uid, e)
            continue
        if new_entries:
            records.append(MapRecords(changed.map_uid, names.get(changed.map_uid, changed.map_uid), new_entries, changed.new_players))
    return InaccurateOutcome(records, diff, False)


def promote_to_inaccurate(
    db: Session,
    alert: AlertSubscription,
    maps: list[CatalogMap],
    *,
    leaderboards: LeaderboardApi,
    retry: RetryPolicy = SCHEDULER_RETRY,
    now: datetime | None = None,
) -> int:
    """Switch alert to inaccurate, track all its maps and baseline every probed map. Returns baselines created."""
    alert.alert_type = ALERT_TYPE_INACCURATE
    db.commit()
    members = sync_alert_maps(db, alert, maps)
    uids = [m.map_uid for m in members]
    probes = leaderboards.probe_positions(uids, retry=retry)
    seeded = seed_missing_baselines(db, uids, probes, now=now)
    logger.info("Alert %s promoted to inaccurate: %s maps, %s baselines seeded", alert.username, len(uids), seeded)
    return seeded


def run_phase1(
    db: Session,
    username: str,
    email: str | None = None,
    *,
    leaderboards: LeaderboardApi | None = None,
    catalog: Any = None,
    resolver: Any = None,
    retry: RetryPolicy = SCHEDULER_RETRY,
    delay: float = MAP_FETCH_DELAY_SECONDS,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Mapper alert for one user: find new times, write mapper_content to today's outbox row,
    log the outcome. Failures are logged as technical_error history and re-raised.
    """
    if leaderboards is None:
        from trackwatch.services.nadeo import default_leaderboards as leaderboards
    if catalog is None:
        from trackwatch.services.map_catalog import default_catalog as catalog
    if resolver is None:
        from trackwatch.services.account_names import default_resolver as resolver
    now = now or datetime.now(timezone.utc)

    alert = get_alert(db, username)
    if alert is None:
        return {"username": username, "skipped": True, "records_found": 0}
    email = email or alert.email
    user_id = alert.user_id
    try:
        maps = catalog.fetch_author_maps(alert.username)
        alert.map_count = len(maps)
        db.commit()

        result: dict[str, Any] = {
            "username": username,
            "map_count": len(maps),
            "promoted": False,
            "overflow": False,
        }
        records: list[MapRecords] = []
        content = ""
        if (
            alert.alert_type == ALERT_TYPE_ACCURATE
            and not alert.alert_type_locked
            and len(maps) > settings.max_maps_accurate
        ):
            seeded = promote_to_inaccurate(db, alert, maps, leaderboards=leaderboards, retry=retry, now=now)
            result["promoted"] = True
            result["baselines_seeded"] = seeded
        elif alert.alert_type == ALERT_TYPE_ACCURATE:
            records = collect_accurate_records(
                db, alert, maps, leaderboards=leaderboards, retry=retry, delay=delay, now=now
            )
        else:
            outcome = collect_inaccurate_records(
                db, alert, maps, leaderboards=leaderboards, retry=retry, delay=delay, now=now
            )
            records = outcome.records
            result["overflow"] = outcome.overflow
            result["maps_changed"] = len(outcome.diff.changed)
            result["maps_initialized"] = len(outcome.diff.initialized)
            if outcome.overflow:
                content = format_overflow_summary(len(outcome.diff.changed), len(outcome.diff.initialized))

        if records:
            ids = account_ids_to_resolve(records)
            names = retry.run(lambda: resolver.resolve(ids), name="display names") if ids else {}
            content = format_new_records(records, names)

        records_found = sum(len(r.entries) for r in records)
        retry.run(lambda: save_mapper_content(db, alert.username, email, content, day=now.date()), name="outbox write")

        if result["promoted"]:
            message = (
                f"Switched to inaccurate mode: {len(maps)} maps exceed the accurate limit of "
                f"{settings.max_maps_accurate}"
            )
            status = STATUS_NO_NEW_TIMES
        elif result["overflow"] and content:
            message, status = f"{result['maps_changed']} maps changed; sent count-only summary", STATUS_SENT
        elif content:
            message, status = f"Found {records_found} new times on {len(records)} maps", STATUS_SENT
        else:
            message, status = "No new times", STATUS_NO_NEW_TIMES
        log_notification(
            db,
            alert.username,
            TYPE_MAPPER_ALERT,
            status,
            message,
            user_id=alert.user_id,
            records_found=records_found,
            day=now.date(),
        )
        result.update(
            alert_type=alert.alert_type,
            records_found=records_found,
            maps_with_records=len(records),
            content=content,
        )
        return result
    except Exception as e:
        db.rollback()
        logger.exception("Phase 1 failed for %s: %s", username, e)
        log_notification(
            db,
            username,
            TYPE_MAPPER_ALERT,
            STATUS_TECHNICAL_ERROR,
            f"Mapper alert failed: {e}",
            user_id=user_id,
            day=now.date(),
        )
        raise
