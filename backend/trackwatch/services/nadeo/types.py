"""
Typed shapes for leaderboard data.

GET /api/token/leaderboard/group/Personal_Best/map/{uid}/top returns
{"tops": [{"zoneName": "World", "top": [entry, ...]}]}; each entry carries accountId,
zoneName, position, score (ms) and timestamp (epoch seconds). We normalize entries to
LeaderboardEntry. The position probe (POST .../group/map?scores[uid]=9999999) returns
[{"mapUid", "score", "zones": [{"ranking": {"position"}}]}] per map.
"""
from typing import NamedTuple, TypedDict


class LeaderboardEntry(TypedDict, total=False):
    account_id: str
    login: str | None
    position: int
    score: int | None  # ms; None when the API reports a negative score
    timestamp: int | None  # epoch seconds of the record
    zone_name: str | None
    player_name: str | None  # filled in by name resolution


class PositionProbe(NamedTuple):
    """Rank the sentinel score would get on a map right now."""

    map_uid: str
    position: int
    score: int


class CatalogMap(NamedTuple):
    map_id: int
    map_uid: str
    name: str
