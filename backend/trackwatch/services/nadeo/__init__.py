"""
Nadeo / Trackmania API access: token cache, credentialed client per provider, leaderboard queries.

default_* instances use settings from .env; services accept their own instances for tests.
"""
from trackwatch.config import settings
from trackwatch.services.nadeo.client import CredentialedClient
from trackwatch.services.nadeo.config import ProviderConfig, live_provider, oauth2_provider
from trackwatch.services.nadeo.leaderboards import (
    LeaderboardApi,
    apply_record_filter,
    filter_by_period,
    validate_period,
)
from trackwatch.services.nadeo.token_store import TokenStore
from trackwatch.services.nadeo.types import CatalogMap, LeaderboardEntry, PositionProbe

live_client = CredentialedClient(live_provider())
oauth_client = CredentialedClient(oauth2_provider())
default_leaderboards = LeaderboardApi(live_client, settings.nadeo_live_base_url)

__all__ = [
    "CatalogMap",
    "CredentialedClient",
    "LeaderboardApi",
    "LeaderboardEntry",
    "PositionProbe",
    "ProviderConfig",
    "TokenStore",
    "apply_record_filter",
    "default_leaderboards",
    "filter_by_period",
    "live_client",
    "live_provider",
    "oauth2_provider",
    "oauth_client",
    "validate_period",
]
