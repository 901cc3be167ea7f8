"""
Baseline for inaccurate mode: the rank the sentinel score got on a map last time we looked.

A different rank on the next probe means somebody new set a time on the map.
"""
from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class MapPosition(Base):
    __tablename__ = "map_positions"

    id = Column(Integer, primary_key=True, index=True)
    map_uid = Column(String(64), nullable=False, unique=True, index=True)
    position = Column(Integer, nullable=False)
    score = Column(BigInteger, nullable=False)
    last_checked_at = Column(DateTime(timezone=True), server_default=func.now())
