"""
Trackmania Exchange map catalog: every map an author published.

GET /api/maps?author=<name>&fields=Name,MapId,MapUid,Authors&after=<last MapId>
returns {"Results": [...], "More": bool}. The walk restarts from the first page on
failure, up to CATALOG_RETRY attempts.
"""
import logging
from typing import Any

import httpx

from trackwatch.config import settings
from trackwatch.core.constants import CATALOG_FIELDS
from trackwatch.core.retry import CATALOG_RETRY, RetryPolicy
from trackwatch.services.nadeo.transport import raise_for_upstream_status, send
from trackwatch.services.nadeo.types import CatalogMap

logger = logging.getLogger(__name__)

# Stop a runaway walk if the API keeps answering More=true
MAX_CATALOG_PAGES = 200


class MapCatalog:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        retry: RetryPolicy = CATALOG_RETRY,
        http: httpx.Client | None = None,
    ) -> None:
        self._base_url = (base_url or settings.map_catalog_url).rstrip("/")
        self._retry = retry
        self._http = http

    def _walk(self, author: str) -> list[CatalogMap]:
        maps: list[CatalogMap] = []
        after: int | None = None
        http = self._http or httpx.Client(timeout=self._retry.timeout)
        try:
            for _page in range(MAX_CATALOG_PAGES):
                params: dict[str, Any] = {"author": author, "fields": CATALOG_FIELDS}
                if after is not None:
                    params["after"] = after
                r = send(http, "GET", self._base_url, params=params)
                raise_for_upstream_status(r)
                data = r.json()
                results = data.get("Results") or []
                for item in results:
                    if item.get("MapUid") and item.get("MapId") is not None:
                        maps.append(CatalogMap(int(item["MapId"]), item["MapUid"], item.get("Name") or item["MapUid"]))
                if not data.get("More") or not results:
                    break
                after = int(results[-1]["MapId"])
            else:
                logger.warning("Map catalog walk for %s stopped after %s pages", author, MAX_CATALOG_PAGES)
        finally:
            if self._http is None:
                http.close()
        return maps

    def fetch_author_maps(self, author: str) -> list[CatalogMap]:
        """All maps by author, in catalog order. Raises once every attempt failed."""
        maps = self._retry.run(lambda: self._walk(author), name=f"map catalog walk for {author}")
        logger.info("Map catalog: %s maps for %s", len(maps), author)
        return maps


default_catalog = MapCatalog()
