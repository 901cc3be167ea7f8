"""
Outbox: one row per user per day. Phase 1 writes mapper_content, Phase 2 writes
driver_content; the send phase emails the row once and marks it sent.
"""
from sqlalchemy import Column, Date, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class DailyEmail(Base):
    __tablename__ = "daily_emails"
    __table_args__ = (UniqueConstraint("username", "email_date", name="uq_daily_emails_username_date"),)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    email_date = Column(Date, nullable=False, index=True)
    mapper_content = Column(Text, nullable=True)
    driver_content = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending")  # pending | sent
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
