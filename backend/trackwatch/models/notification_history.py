"""Outcome of each phase run per user: sent | no_new_times | technical_error."""
from sqlalchemy import Column, Date, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class NotificationHistory(Base):
    __tablename__ = "notification_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    username = Column(String(64), nullable=False, index=True)
    notification_type = Column(String(32), nullable=False)  # mapper_alert | driver_notification
    status = Column(String(32), nullable=False)
    message = Column(Text, nullable=True)
    records_found = Column(Integer, nullable=False, default=0)
    processing_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
