"""Same-day leaderboard snapshots: accurate mode writes one per map per day, driver notices read them."""
import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from trackwatch.models.map_leaderboard_cache import MapLeaderboardCache

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def cache_key(map_uid: str, day: date) -> str:
    return f"map_{map_uid}_{day.isoformat()}"


def save_leaderboard_snapshot(db: Session, map_uid: str, entries: list[dict[str, Any]], day: date | None = None) -> None:
    """Upsert today's snapshot for map_uid. Commits."""
    day = day or utc_today()
    key = cache_key(map_uid, day)
    row = db.query(MapLeaderboardCache).filter(MapLeaderboardCache.cache_key == key).first()
    if row is None:
        db.add(MapLeaderboardCache(cache_key=key, map_uid=map_uid, cache_date=day, leaderboard=list(entries)))
    else:
        row.leaderboard = list(entries)
    db.commit()


def get_leaderboard_snapshot(db: Session, map_uid: str, day: date | None = None) -> list[dict[str, Any]] | None:
    day = day or utc_today()
    row = db.query(MapLeaderboardCache).filter(MapLeaderboardCache.cache_key == cache_key(map_uid, day)).first()
    return list(row.leaderboard) if row else None


def prune_old_snapshots(db: Session, before: date) -> int:
    deleted = db.query(MapLeaderboardCache).filter(MapLeaderboardCache.cache_date < before).delete(synchronize_session=False)
    db.commit()
    if deleted:
        logger.info("Pruned %s leaderboard snapshots older than %s", deleted, before)
    return deleted
