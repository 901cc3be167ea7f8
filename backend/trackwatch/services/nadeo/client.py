"""
Credentialed API client: injects a cached token, renews it when stale, retries once on 401.

No retry loop here; callers that need retries wrap calls in a RetryPolicy.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from trackwatch.core.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, TOKEN_MAX_AGE_HOURS
from trackwatch.core.errors import AuthExpiredError, TrackwatchError
from trackwatch.services.nadeo.config import IssuedTokens, ProviderConfig
from trackwatch.services.nadeo.token_store import TokenPair, TokenStore
from trackwatch.services.nadeo.transport import raise_for_upstream_status, send

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialedClient:
    """One client per provider namespace (live, oauth2)."""

    def __init__(
        self,
        provider: ProviderConfig,
        *,
        token_store: TokenStore | None = None,
        http: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.provider = provider
        self._store = token_store or TokenStore()
        self._http = http
        self._timeout = timeout
        self._now = now
        self._lock = threading.Lock()
        self._max_age = timedelta(hours=TOKEN_MAX_AGE_HOURS)

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=self._timeout)
        return self._http

    def _is_fresh(self, pair: TokenPair) -> bool:
        return pair.access is not None and self._now() - pair.access.created_at < self._max_age

    def _save(self, issued: IssuedTokens) -> str:
        self._store.save(self.provider.name, issued.access_token, issued.refresh_token, now=self._now())
        return issued.access_token

    def _renew(self, pair: TokenPair) -> str:
        """Refresh with the stored refresh token; fall back to a full login."""
        if pair.refresh is not None:
            try:
                issued = self.provider.grant.refresh(self.http, pair.refresh.token)
                logger.info("Refreshed %s token", self.provider.name)
                return self._save(issued)
            except (TrackwatchError, httpx.HTTPError, ValueError) as e:
                logger.warning("Refreshing %s token failed, logging in again: %s", self.provider.name, e)
        issued = self.provider.grant.login(self.http)
        logger.info("Logged in to %s", self.provider.name)
        return self._save(issued)

    def get_valid_token(self) -> str:
        """Cached access token if younger than 24h; otherwise refresh-or-login."""
        with self._lock:
            pair = self._store.get(self.provider.name)
            if self._is_fresh(pair):
                return pair.access.token
            return self._renew(pair)

    def _force_renew(self, rejected_token: str) -> str:
        with self._lock:
            pair = self._store.get(self.provider.name)
            # Another thread may already have renewed since our request went out
            if pair.access is not None and pair.access.token != rejected_token and self._is_fresh(pair):
                return pair.access.token
            return self._renew(pair)

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send with the provider's Authorization header. Non-401 errors are raised as-is."""
        token = self.get_valid_token()
        r = self._send(method, url, token, **kwargs)
        if r.status_code == 401:
            logger.info("%s %s got 401 for %s; renewing token once", method, url, self.provider.name)
            token = self._force_renew(token)
            r = self._send(method, url, token, **kwargs)
            if r.status_code == 401:
                raise AuthExpiredError(
                    f"{method} {url} still unauthorized after renewing {self.provider.name} token",
                    status_code=401,
                )
        raise_for_upstream_status(r)
        return r

    def _send(self, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = self.provider.authorization_header(token)
        return send(self.http, method, url, headers=headers, **kwargs)

    def get_json(self, url: str, **kwargs: Any) -> Any:
        return self.request("GET", url, **kwargs).json()

    def post_json(self, url: str, **kwargs: Any) -> Any:
        return self.request("POST", url, **kwargs).json()
