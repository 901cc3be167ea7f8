"""
Provider configs for the credentialed client.

Two namespaces, never sharing tokens:
  - live:   first-party Nadeo session auth. Basic-credential login for an audience,
            refresh with the refresh token, header "nadeo_v1 t=<token>".
  - oauth2: public Trackmania API, client-credentials grant, header "Bearer <token>".
A ProviderConfig is endpoints + a grant strategy; the client itself is the same class.
"""
import base64
import logging
from typing import NamedTuple, Protocol

import httpx

from trackwatch.config import Settings, settings as default_settings
from trackwatch.core.constants import PROVIDER_LIVE, PROVIDER_OAUTH2
from trackwatch.core.errors import MissingCredentialsError, UpstreamError
from trackwatch.services.nadeo.transport import raise_for_upstream_status, send

logger = logging.getLogger(__name__)


class IssuedTokens(NamedTuple):
    access_token: str
    refresh_token: str | None  # None: keep the stored refresh token


class TokenGrant(Protocol):
    """How a provider issues tokens."""

    def is_configured(self) -> bool:
        ...

    def login(self, http: httpx.Client) -> IssuedTokens:
        """Full credential login."""
        ...

    def refresh(self, http: httpx.Client, refresh_token: str) -> IssuedTokens:
        ...


class NadeoSessionGrant:
    """Dedicated-server style login: Basic login:password, audience NadeoLiveServices."""

    def __init__(self, *, login_url: str, refresh_url: str, authorization: str, audience: str, user_agent: str) -> None:
        self.login_url = login_url
        self.refresh_url = refresh_url
        self.authorization = authorization
        self.audience = audience
        self.user_agent = user_agent

    def is_configured(self) -> bool:
        return bool(self.authorization)

    def login(self, http: httpx.Client) -> IssuedTokens:
        if not self.is_configured():
            raise MissingCredentialsError("NADEO_AUTHORIZATION is not set (expected login:password).")
        basic = base64.b64encode(self.authorization.encode()).decode()
        r = send(
            http,
            "POST",
            self.login_url,
            json={"audience": self.audience},
            headers={"Authorization": f"Basic {basic}", "User-Agent": self.user_agent},
        )
        raise_for_upstream_status(r)
        data = r.json()
        access, refresh = data.get("accessToken"), data.get("refreshToken")
        if not access or not refresh:
            raise UpstreamError("Nadeo login response is missing accessToken or refreshToken")
        return IssuedTokens(access, refresh)

    def refresh(self, http: httpx.Client, refresh_token: str) -> IssuedTokens:
        r = send(
            http,
            "POST",
            self.refresh_url,
            headers={"Authorization": f"nadeo_v1 t={refresh_token}", "User-Agent": self.user_agent},
        )
        raise_for_upstream_status(r)
        data = r.json()
        if not data.get("accessToken"):
            raise UpstreamError("Nadeo refresh response is missing accessToken")
        return IssuedTokens(data["accessToken"], data.get("refreshToken"))


class OAuthClientCredentialsGrant:
    """OAuth2 client credentials; refresh_token grant when the server issued one."""

    def __init__(self, *, token_url: str, client_id: str, client_secret: str) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _token_request(self, http: httpx.Client, form: dict[str, str]) -> IssuedTokens:
        r = send(http, "POST", self.token_url, data=form)
        raise_for_upstream_status(r)
        data = r.json()
        if not data.get("access_token"):
            raise UpstreamError("OAuth token response is missing access_token")
        return IssuedTokens(data["access_token"], data.get("refresh_token"))

    def login(self, http: httpx.Client) -> IssuedTokens:
        if not self.is_configured():
            raise MissingCredentialsError("OAUTH_CLIENT_ID and OAUTH_CLIENT_SECRET must be set.")
        return self._token_request(
            http,
            {"grant_type": "client_credentials", "client_id": self.client_id, "client_secret": self.client_secret},
        )

    def refresh(self, http: httpx.Client, refresh_token: str) -> IssuedTokens:
        return self._token_request(
            http,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )


class ProviderConfig:
    """Token namespace + grant strategy + how the token goes into the Authorization header."""

    __slots__ = ("name", "grant", "auth_scheme")

    def __init__(self, *, name: str, grant: TokenGrant, auth_scheme: str) -> None:
        self.name = name
        self.grant = grant
        self.auth_scheme = auth_scheme

    def authorization_header(self, token: str) -> str:
        if self.auth_scheme == "nadeo_v1":
            return f"nadeo_v1 t={token}"
        return f"{self.auth_scheme} {token}"


def live_provider(cfg: Settings | None = None) -> ProviderConfig:
    cfg = cfg or default_settings
    core = cfg.nadeo_core_base_url.rstrip("/")
    return ProviderConfig(
        name=PROVIDER_LIVE,
        auth_scheme="nadeo_v1",
        grant=NadeoSessionGrant(
            login_url=cfg.nadeo_login_url,
            refresh_url=f"{core}/v2/authentication/token/refresh",
            authorization=cfg.nadeo_authorization,
            audience=cfg.nadeo_audience,
            user_agent=cfg.nadeo_user_agent,
        ),
    )


def oauth2_provider(cfg: Settings | None = None) -> ProviderConfig:
    cfg = cfg or default_settings
    return ProviderConfig(
        name=PROVIDER_OAUTH2,
        auth_scheme="Bearer",
        grant=OAuthClientCredentialsGrant(
            token_url=f"{cfg.trackmania_api_base_url.rstrip('/')}/api/access_token",
            client_id=cfg.oauth_client_id,
            client_secret=cfg.oauth_client_secret,
        ),
    )
