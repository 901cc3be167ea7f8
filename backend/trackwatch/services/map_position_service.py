"""
Inaccurate-mode state: alert map membership (alert_maps) and per-map sentinel baselines
(map_positions).

A baseline is the rank the sentinel score got on a map at the last probe. It is created
on first probe, rewritten only when the probed rank differs, and deleted once no
alert_maps row references the map.
"""
import logging
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from trackwatch.models.alert_map import AlertMap
from trackwatch.models.alert_subscription import AlertSubscription
from trackwatch.models.map_position import MapPosition
from trackwatch.services.nadeo.types import CatalogMap, PositionProbe

logger = logging.getLogger(__name__)


class ChangedMap(NamedTuple):
    map_uid: str
    old_position: int
    new_position: int

    @property
    def new_players(self) -> int:
        return self.new_position - self.old_position


class PositionDiff(NamedTuple):
    changed: list[ChangedMap]
    initialized: list[str]
    unchanged: int
    missing: list[str]  # no probe result: nothing known, nothing changed

    @property
    def activity_count(self) -> int:
        return len(self.changed) + len(self.initialized)


def sync_alert_maps(db: Session, alert: AlertSubscription, maps: list[CatalogMap]) -> list[AlertMap]:
    """
    Make alert_maps for alert match the catalog: add new maps, refresh names, drop maps
    that left the catalog. Returns membership in catalog order. Commits.
    """
    existing = {m.map_uid: m for m in db.query(AlertMap).filter(AlertMap.alert_id == alert.id).all()}
    wanted = {m.map_uid for m in maps}
    members: list[AlertMap] = []
    seen: set[str] = set()
    for m in maps:
        if m.map_uid in seen:
            continue
        seen.add(m.map_uid)
        row = existing.get(m.map_uid)
        if row is None:
            row = AlertMap(alert_id=alert.id, map_uid=m.map_uid, map_name=m.name)
            db.add(row)
            existing[m.map_uid] = row
        elif row.map_name != m.name:
            row.map_name = m.name
        members.append(row)
    removed = [row for uid, row in existing.items() if uid not in wanted]
    for row in removed:
        db.delete(row)
    db.flush()
    if removed:
        delete_orphan_baselines(db)
    db.commit()
    if removed:
        logger.info("Alert %s: %s maps left the catalog", alert.username, len(removed))
    return members


def delete_orphan_baselines(db: Session) -> int:
    """Delete map_positions rows that no alert_maps row references. Caller commits."""
    referenced = select(AlertMap.map_uid)
    deleted = (
        db.query(MapPosition)
        .filter(MapPosition.map_uid.notin_(referenced))
        .delete(synchronize_session=False)
    )
    if deleted:
        logger.info("Deleted %s orphaned map baselines", deleted)
    return deleted


def get_baselines(db: Session, map_uids: list[str]) -> dict[str, MapPosition]:
    if not map_uids:
        return {}
    rows = db.query(MapPosition).filter(MapPosition.map_uid.in_(map_uids)).all()
    return {r.map_uid: r for r in rows}


def apply_position_probes(
    db: Session,
    map_uids: list[str],
    probes: dict[str, PositionProbe],
    *,
    now: datetime | None = None,
) -> PositionDiff:
    """
    Compare probes to baselines in map_uids order. New maps get a baseline silently;
    maps whose rank moved are reported and their baseline rewritten; unchanged baselines
    are not touched. Commits.
    """
    now = now or datetime.now(timezone.utc)
    baselines = get_baselines(db, map_uids)
    changed: list[ChangedMap] = []
    initialized: list[str] = []
    missing: list[str] = []
    unchanged = 0
    for uid in map_uids:
        probe = probes.get(uid)
        if probe is None:
            missing.append(uid)
            continue
        baseline = baselines.get(uid)
        if baseline is None:
            baseline = MapPosition(map_uid=uid, position=probe.position, score=probe.score, last_checked_at=now)
            db.add(baseline)
            baselines[uid] = baseline
            initialized.append(uid)
        elif baseline.position != probe.position:
            changed.append(ChangedMap(uid, baseline.position, probe.position))
            baseline.position = probe.position
            baseline.score = probe.score
            baseline.last_checked_at = now
        else:
            unchanged += 1
    db.commit()
    return PositionDiff(changed, initialized, unchanged, missing)


def seed_missing_baselines(
    db: Session,
    map_uids: list[str],
    probes: dict[str, PositionProbe],
    *,
    now: datetime | None = None,
) -> int:
    """Create baselines only for maps that have none yet. Existing baselines are left alone."""
    now = now or datetime.now(timezone.utc)
    baselines = get_baselines(db, map_uids)
    created = 0
    for uid in map_uids:
        probe = probes.get(uid)
        if probe is None or uid in baselines:
            continue
        baselines[uid] = MapPosition(map_uid=uid, position=probe.position, score=probe.score, last_checked_at=now)
        db.add(baselines[uid])
        created += 1
    db.commit()
    return created


def clear_alert_maps(db: Session, alert: AlertSubscription) -> int:
    """Remove all membership rows of alert and any baselines left unreferenced. Caller commits."""
    removed = db.query(AlertMap).filter(AlertMap.alert_id == alert.id).delete(synchronize_session=False)
    db.flush()
    delete_orphan_baselines(db)
    return removed
