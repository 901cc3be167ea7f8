"""Same-day leaderboard snapshot per map (written by accurate mode, read by driver notices)."""
from sqlalchemy import Column, Date, DateTime, String
from sqlalchemy.sql import func

from trackwatch.db.base import Base, JSONType


class MapLeaderboardCache(Base):
    __tablename__ = "map_leaderboard_cache"

    cache_key = Column(String(128), primary_key=True)  # map_{uid}_{YYYY-MM-DD}
    map_uid = Column(String(64), nullable=False, index=True)
    cache_date = Column(Date, nullable=False, index=True)
    leaderboard = Column(JSONType, nullable=False)  # list of entries as fetched
    created_at = Column(DateTime(timezone=True), server_default=func.now())
