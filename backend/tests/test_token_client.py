"""Credentialed client: token freshness, refresh, login fallback, retry-on-401, provider isolation."""
import json
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from helpers import NOW
from trackwatch.config import Settings
from trackwatch.core.errors import AuthExpiredError, MissingCredentialsError, TransientUpstreamError
from trackwatch.services.nadeo.client import CredentialedClient
from trackwatch.services.nadeo.config import live_provider, oauth2_provider
from trackwatch.services.nadeo.token_store import TokenStore

API_URL = "https://live-services.trackmania.nadeo.live/api/token/leaderboard/group/Personal_Best/map/M1/top"
LOGIN_URL = "https://prod.trackmania.core.nadeo.online/v2/authentication/token/basic"
REFRESH_URL = "https://prod.trackmania.core.nadeo.online/v2/authentication/token/refresh"
OAUTH_URL = "https://api.trackmania.com/api/access_token"

_settings = Settings(
    nadeo_authorization="server_login:server_password",
    oauth_client_id="client-id",
    oauth_client_secret="client-secret",
)


class Upstream:
    """MockTransport handler with per-URL scripted responses; records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[httpx.Response]] = {}

    def on(self, url: str, *responses: httpx.Response) -> None:
        self.routes.setdefault(url, []).extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        queue = self.routes.get(url)
        if not queue:
            return httpx.Response(404, json={"error": "unexpected"})
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).split("?")[0] == url]


@pytest.fixture()
def upstream():
    return Upstream()


@pytest.fixture()
def store(session_factory):
    return TokenStore(session_factory)


def _client(provider, store, upstream):
    return CredentialedClient(
        provider,
        token_store=store,
        http=httpx.Client(transport=httpx.MockTransport(upstream)),
        now=lambda: NOW,
    )


def test_fresh_token_is_reused_without_auth_calls(store, upstream):
    store.save("live", "cached-access", "cached-refresh", now=NOW - timedelta(hours=23))
    upstream.on(API_URL, httpx.Response(200, json={"tops": []}))
    client = _client(live_provider(_settings), store, upstream)

    client.get_json(API_URL)

    assert len(upstream.requests) == 1
    assert upstream.requests[0].headers["Authorization"] == "nadeo_v1 t=cached-access"


def test_stale_token_is_refreshed_and_old_refresh_token_kept(store, upstream):
    store.save("live", "old-access", "keep-me", now=NOW - timedelta(hours=25))
    upstream.on(REFRESH_URL, httpx.Response(200, json={"accessToken": "new-access"}))
    upstream.on(API_URL, httpx.Response(200, json={}))
    client = _client(live_provider(_settings), store, upstream)

    assert client.get_valid_token() == "new-access"
    refresh_call = upstream.calls_to(REFRESH_URL)[0]
    assert refresh_call.headers["Authorization"] == "nadeo_v1 t=keep-me"
    pair = store.get("live")
    assert pair.access.token == "new-access"
    assert pair.access.created_at == NOW
    assert pair.refresh.token == "keep-me"


def test_failed_refresh_falls_back_to_login(store, upstream):
    store.save("live", "old-access", "bad-refresh", now=NOW - timedelta(days=2))
    upstream.on(REFRESH_URL, httpx.Response(401, json={"error": "expired"}))
    upstream.on(LOGIN_URL, httpx.Response(200, json={"accessToken": "login-access", "refreshToken": "login-refresh"}))
    client = _client(live_provider(_settings), store, upstream)

    assert client.get_valid_token() == "login-access"
    login = upstream.calls_to(LOGIN_URL)[0]
    assert login.headers["Authorization"].startswith("Basic ")
    assert json.loads(login.content) == {"audience": "NadeoLiveServices"}
    assert store.get("live").refresh.token == "login-refresh"


def test_no_tokens_means_login(store, upstream):
    upstream.on(LOGIN_URL, httpx.Response(200, json={"accessToken": "a1", "refreshToken": "r1"}))
    client = _client(live_provider(_settings), store, upstream)
    assert client.get_valid_token() == "a1"
    assert upstream.calls_to(REFRESH_URL) == []


def test_login_response_without_refresh_token_is_rejected(store, upstream):
    upstream.on(LOGIN_URL, httpx.Response(200, json={"accessToken": "a1"}))
    client = _client(live_provider(_settings), store, upstream)
    with pytest.raises(Exception, match="refreshToken"):
        client.get_valid_token()
    assert store.get("live").access is None


def test_single_401_triggers_one_renew_and_retry(store, upstream):
    store.save("live", "revoked", "r1", now=NOW - timedelta(hours=1))
    upstream.on(API_URL, httpx.Response(401), httpx.Response(200, json={"ok": True}))
    upstream.on(REFRESH_URL, httpx.Response(200, json={"accessToken": "renewed", "refreshToken": "r2"}))
    client = _client(live_provider(_settings), store, upstream)

    assert client.get_json(API_URL) == {"ok": True}
    api_calls = upstream.calls_to(API_URL)
    assert [c.headers["Authorization"] for c in api_calls] == ["nadeo_v1 t=revoked", "nadeo_v1 t=renewed"]
    assert len(upstream.calls_to(REFRESH_URL)) == 1


def test_second_401_is_fatal(store, upstream):
    store.save("live", "revoked", "r1", now=NOW - timedelta(hours=1))
    upstream.on(API_URL, httpx.Response(401))
    upstream.on(REFRESH_URL, httpx.Response(200, json={"accessToken": "renewed"}))
    client = _client(live_provider(_settings), store, upstream)

    with pytest.raises(AuthExpiredError):
        client.get_json(API_URL)
    assert len(upstream.calls_to(API_URL)) == 2
    assert len(upstream.calls_to(REFRESH_URL)) == 1


def test_server_errors_propagate_without_retry(store, upstream):
    store.save("live", "tok", "r1", now=NOW)
    upstream.on(API_URL, httpx.Response(503, text="maintenance"))
    client = _client(live_provider(_settings), store, upstream)

    with pytest.raises(TransientUpstreamError):
        client.get_json(API_URL)
    assert len(upstream.calls_to(API_URL)) == 1


def test_timeout_is_transient(store):
    store.save("live", "tok", "r1", now=NOW)

    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    client = CredentialedClient(
        live_provider(_settings),
        token_store=store,
        http=httpx.Client(transport=httpx.MockTransport(handler)),
        now=lambda: NOW,
    )
    with pytest.raises(TransientUpstreamError, match="timed out"):
        client.get_json(API_URL)


def test_oauth2_client_credentials_and_bearer_header(store, upstream):
    names_url = "https://api.trackmania.com/api/display-names"
    upstream.on(OAUTH_URL, httpx.Response(200, json={"access_token": "oauth-token", "expires_in": 3600}))
    upstream.on(names_url, httpx.Response(200, json={"acc-1": "Speedy"}))
    client = _client(oauth2_provider(_settings), store, upstream)

    assert client.get_json(names_url, params=[("accountId[]", "acc-1")]) == {"acc-1": "Speedy"}
    form = parse_qs(upstream.calls_to(OAUTH_URL)[0].content.decode())
    assert form["grant_type"] == ["client_credentials"]
    assert form["client_id"] == ["client-id"]
    assert upstream.calls_to(names_url)[0].headers["Authorization"] == "Bearer oauth-token"


def test_provider_namespaces_do_not_share_tokens(store, upstream):
    store.save("live", "live-token", "live-refresh", now=NOW)
    upstream.on(OAUTH_URL, httpx.Response(200, json={"access_token": "oauth-token"}))
    oauth = _client(oauth2_provider(_settings), store, upstream)

    assert oauth.get_valid_token() == "oauth-token"
    assert store.get("live").access.token == "live-token"
    assert store.get("oauth2").refresh is None


def test_missing_credentials_fail_before_any_request(store, upstream):
    client = _client(live_provider(Settings(nadeo_authorization="")), store, upstream)
    with pytest.raises(MissingCredentialsError):
        client.get_json(API_URL)
    assert upstream.requests == []
