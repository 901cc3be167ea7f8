import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Tests always use in-memory SQLite; set before trackwatch reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "test-cron-secret"

from trackwatch.core.retry import RetryPolicy
from trackwatch.db.base import Base
import trackwatch.models  # noqa: F401
from trackwatch.models.user import User


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def no_retry():
    return RetryPolicy(max_attempts=1, base_delay=0, sleep=lambda s: None)


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def quick_retry(sleeps):
    """Scheduler-style retry; sleeps are recorded instead of slept."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, sleep=sleeps.append)


@pytest.fixture()
def make_user(db_session):
    def _make(username: str, email: str | None = None, account_id: str | None = None, tm_username: str | None = None):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            tm_account_id=account_id,
            tm_username=tm_username,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make
