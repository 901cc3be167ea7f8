"""
Mapper alert: notify a map author about new times on their maps.

alert_type accurate = full leaderboard diff per map; inaccurate = sentinel-rank probe
against map_positions baselines, for authors with many maps. alert_type_locked is set
by an admin override and disables auto-promotion.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class AlertSubscription(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False)
    alert_type = Column(String(16), nullable=False, default="accurate")  # accurate | inaccurate
    alert_type_locked = Column(Boolean, nullable=False, default=False)
    map_count = Column(Integer, nullable=False, default=0)
    record_filter = Column(String(8), nullable=False, default="all")  # all | top5 | wr
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
