"""A driver tracks their own top-5 standing on one map."""
from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class DriverNotification(Base):
    __tablename__ = "driver_notifications"
    __table_args__ = (UniqueConstraint("user_id", "map_uid", name="uq_driver_notifications_user_map"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    map_uid = Column(String(64), nullable=False, index=True)
    map_name = Column(String(255), nullable=False)
    current_position = Column(Integer, nullable=False)
    current_score = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="active")  # active | inactive (fell out of top 5)
    is_active = Column(Boolean, nullable=False, default=True)  # user toggle
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
