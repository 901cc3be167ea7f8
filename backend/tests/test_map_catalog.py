import httpx
import pytest

from trackwatch.core.errors import TransientUpstreamError
from trackwatch.core.retry import RetryPolicy
from trackwatch.services.map_catalog import MapCatalog
from trackwatch.services.nadeo.types import CatalogMap

CATALOG_URL = "https://tmx.example/api/maps"


def _page(start, count, more):
    return {
        "Results": [{"MapId": i, "MapUid": f"uid{i}", "Name": f"Map {i}"} for i in range(start, start + count)],
        "More": more,
    }


def _catalog(handler, sleeps=None, attempts=5):
    retry = RetryPolicy(
        max_attempts=attempts,
        base_delay=900,
        backoff=1.0,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )
    return MapCatalog(CATALOG_URL, retry=retry, http=httpx.Client(transport=httpx.MockTransport(handler)))


def test_walk_follows_after_cursor_until_more_is_false():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        after = request.url.params.get("after")
        if after is None:
            return httpx.Response(200, json=_page(1, 3, True))
        if after == "3":
            return httpx.Response(200, json=_page(4, 2, False))
        return httpx.Response(500)

    maps = _catalog(handler).fetch_author_maps("Mapper")

    assert [m.map_uid for m in maps] == ["uid1", "uid2", "uid3", "uid4", "uid5"]
    assert maps[0] == CatalogMap(1, "uid1", "Map 1")
    assert seen[0]["author"] == "Mapper"
    assert seen[0]["fields"] == "Name,MapId,MapUid,Authors"
    assert "after" not in seen[0]
    assert len(seen) == 2


def test_empty_results_end_the_walk():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(200, json={"Results": [], "More": True})

    assert _catalog(handler).fetch_author_maps("Nobody") == []
    assert len(calls) == 1


def test_failure_restarts_the_whole_walk_after_fixed_delay():
    sleeps = []
    state = {"failures_left": 1}
    pages_requested = []

    def handler(request):
        after = request.url.params.get("after")
        pages_requested.append(after)
        if after is None:
            return httpx.Response(200, json=_page(1, 2, True))
        if state["failures_left"]:
            state["failures_left"] -= 1
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json=_page(3, 1, False))

    maps = _catalog(handler, sleeps).fetch_author_maps("Mapper")

    assert [m.map_id for m in maps] == [1, 2, 3]
    assert pages_requested == [None, "2", None, "2"]
    assert sleeps == [900]


def test_gives_up_after_all_attempts():
    sleeps = []

    def handler(request):
        return httpx.Response(503)

    with pytest.raises(TransientUpstreamError):
        _catalog(handler, sleeps).fetch_author_maps("Mapper")
    assert sleeps == [900, 900, 900, 900]
