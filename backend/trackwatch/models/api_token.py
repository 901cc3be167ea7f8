"""Cached provider tokens. One row per (provider, token_type); overwritten on refresh/login."""
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from trackwatch.db.base import Base


class ApiToken(Base):
    __tablename__ = "api_tokens"
    __table_args__ = (UniqueConstraint("provider", "token_type", name="uq_api_tokens_provider_type"),)

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(32), nullable=False)  # live | oauth2
    token_type = Column(String(16), nullable=False)  # access | refresh
    token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)  # set by us: freshness is age-based
