"""Registered user. Owned by the account service; read-only here."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from trackwatch.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False)
    tm_username = Column(String(64), nullable=True)  # in-game login; fallback match on leaderboards
    tm_account_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
