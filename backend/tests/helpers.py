"""Shared test data builders and fakes for the external APIs."""
from datetime import datetime, timedelta, timezone

from trackwatch.core.errors import TransientUpstreamError
from trackwatch.services.nadeo.types import CatalogMap, PositionProbe

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def ts(hours_ago: float) -> int:
    """Record timestamp (epoch seconds) hours_ago before NOW."""
    return int((NOW - timedelta(hours=hours_ago)).timestamp())


def entry(account_id: str, position: int, score: int = 50000, hours_ago: float = 1, **extra):
    e = {
        "account_id": account_id,
        "login": extra.pop("login", None),
        "position": position,
        "score": score,
        "timestamp": ts(hours_ago),
        "zone_name": extra.pop("zone_name", "World"),
    }
    e.update(extra)
    return e


class FakeLeaderboards:
    """Stands in for LeaderboardApi: canned tops and probes, records every call."""

    def __init__(self, tops=None, probes=None, failing=()):
        self.tops = dict(tops or {})
        self.probes = dict(probes or {})
        self.failing = set(failing)
        self.top_calls: list[tuple[str, dict]] = []
        self.probe_calls: list[list[str]] = []

    def get_top(self, map_uid, *, length=100, only_world=True, timeout=None):
        self.top_calls.append((map_uid, {"length": length, "only_world": only_world, "timeout": timeout}))
        if map_uid in self.failing:
            raise TransientUpstreamError(f"leaderboard {map_uid} timed out")
        return [dict(e) for e in self.tops.get(map_uid, [])][:length]

    def probe_positions(self, map_uids, *, retry=None):
        uids = list(map_uids)
        self.probe_calls.append(uids)
        return {uid: self.probes[uid] for uid in uids if uid in self.probes}

    def set_probe(self, map_uid: str, position: int, score: int = 9999999) -> None:
        self.probes[map_uid] = PositionProbe(map_uid, position, score)


class FakeCatalog:
    def __init__(self, maps=None, error: Exception | None = None):
        self.maps = list(maps or [])
        self.error = error
        self.calls: list[str] = []

    def fetch_author_maps(self, author):
        self.calls.append(author)
        if self.error is not None:
            raise self.error
        return list(self.maps)


class FakeResolver:
    def __init__(self, names=None):
        self.names = dict(names or {})
        self.calls: list[list[str]] = []

    def resolve(self, account_ids):
        ids = list(account_ids)
        self.calls.append(ids)
        return {a: self.names[a] for a in ids if a in self.names}


def catalog_maps(count: int, prefix: str = "M") -> list[CatalogMap]:
    return [CatalogMap(i + 1, f"{prefix}{i + 1}", f"Map {prefix}{i + 1}") for i in range(count)]
