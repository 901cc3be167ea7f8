"""
Token cache backed by api_tokens. One access + one refresh row per provider.

Each call opens its own session: the client is long-lived and shared across threads.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, NamedTuple

from sqlalchemy.orm import Session

from trackwatch.core.constants import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH
from trackwatch.models.api_token import ApiToken

logger = logging.getLogger(__name__)


class StoredToken(NamedTuple):
    token: str
    created_at: datetime  # always UTC-aware


class TokenPair(NamedTuple):
    access: StoredToken | None
    refresh: StoredToken | None


def _default_session_factory() -> Session:
    from trackwatch.db.session import SessionLocal

    return SessionLocal()


class TokenStore:
    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or _default_session_factory

    def get(self, provider: str) -> TokenPair:
        db = self._session_factory()
        try:
            rows = db.query(ApiToken).filter(ApiToken.provider == provider).all()
            by_type: dict[str, StoredToken] = {}
            for row in rows:
                created = row.created_at
                if created.tzinfo is None:
                    created = created.replace(tzinfo=timezone.utc)
                by_type[row.token_type] = StoredToken(row.token, created)
            return TokenPair(by_type.get(TOKEN_TYPE_ACCESS), by_type.get(TOKEN_TYPE_REFRESH))
        finally:
            db.close()

    def save(
        self,
        provider: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        """Overwrite the access token (and the refresh token when given) in one transaction."""
        now = now or datetime.now(timezone.utc)
        updates = {TOKEN_TYPE_ACCESS: access_token}
        if refresh_token:
            updates[TOKEN_TYPE_REFRESH] = refresh_token
        db = self._session_factory()
        try:
            for token_type, token in updates.items():
                row = (
                    db.query(ApiToken)
                    .filter(ApiToken.provider == provider, ApiToken.token_type == token_type)
                    .first()
                )
                if row is None:
                    db.add(ApiToken(provider=provider, token_type=token_type, token=token, created_at=now))
                else:
                    row.token = token
                    row.created_at = now
            db.commit()
            logger.debug("Stored %s token(s) for provider %s", ", ".join(updates), provider)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
