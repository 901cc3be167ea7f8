"""Account id -> display name, via the public Trackmania API (oauth2 provider)."""
import logging
from typing import Iterable

from trackwatch.config import settings
from trackwatch.core.constants import DISPLAY_NAME_CHUNK_SIZE
from trackwatch.services.nadeo import oauth_client
from trackwatch.services.nadeo.client import CredentialedClient

logger = logging.getLogger(__name__)


class AccountNameResolver:
    def __init__(self, client: CredentialedClient | None = None, base_url: str | None = None) -> None:
        self._client = client or oauth_client
        self._base_url = (base_url or settings.trackmania_api_base_url).rstrip("/")

    def _lookup(self, chunk: list[str]) -> dict[str, str]:
        params = [("accountId[]", account_id) for account_id in chunk]
        data = self._client.get_json(f"{self._base_url}/api/display-names", params=params)
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def resolve(self, account_ids: Iterable[str]) -> dict[str, str]:
        """
        Names for the given ids, looked up in chunks of 50. A failed chunk is logged and
        skipped, so the result may be partial; callers fall back to the account id.
        """
        ids = [a for a in dict.fromkeys(account_ids) if a]
        names: dict[str, str] = {}
        for i in range(0, len(ids), DISPLAY_NAME_CHUNK_SIZE):
            chunk = ids[i : i + DISPLAY_NAME_CHUNK_SIZE]
            try:
                names.update(self._lookup(chunk))
            except Exception as e:
                logger.warning("Display-name lookup failed for %s ids (chunk %s): %s", len(chunk), i // DISPLAY_NAME_CHUNK_SIZE, e)
        return names


default_resolver = AccountNameResolver()
