"""Map membership of an inaccurate-mode alert. One row per (alert, map)."""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from trackwatch.db.base import Base


class AlertMap(Base):
    __tablename__ = "alert_maps"
    __table_args__ = (UniqueConstraint("alert_id", "map_uid", name="uq_alert_maps_alert_map"),)

    id = Column(Integer, primary_key=True, index=True)
    alert_id = Column(Integer, ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    map_uid = Column(String(64), nullable=False, index=True)
    map_name = Column(String(255), nullable=True)
