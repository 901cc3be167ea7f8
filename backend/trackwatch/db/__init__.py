from trackwatch.db.base import Base
from trackwatch.db.session import get_db, engine, SessionLocal
from trackwatch.db.tables import ALL_TABLE_NAMES, NOTIFICATION_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "NOTIFICATION_TABLE_NAMES"]
