"""Background crawl job: all of a user's maps with their recent leaderboard entries."""
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from trackwatch.db.base import Base, JSONType


class MapSearchJob(Base):
    __tablename__ = "map_search_jobs"

    job_id = Column(String(64), primary_key=True)
    username = Column(String(64), nullable=False, index=True)
    period = Column(String(8), nullable=False, default="1d")
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending | processing | completed | failed
    result = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
