"""
Leaderboard queries against Nadeo live services: top-N per map, sentinel position probe,
plus the time-window and record filters applied to fetched entries.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from trackwatch.core.constants import (
    LEADERBOARD_TOP_LENGTH,
    PERIOD_HOURS,
    PERSONAL_BEST_GROUP,
    POSITION_PROBE_BATCH_SIZE,
    RECORD_FILTER_ALL,
    RECORD_FILTER_TOP5,
    RECORD_FILTER_WR,
    SENTINEL_SCORE_MS,
)
from trackwatch.core.errors import InvalidInputError
from trackwatch.core.retry import SCHEDULER_RETRY, RetryPolicy
from trackwatch.services.nadeo.client import CredentialedClient
from trackwatch.services.nadeo.types import LeaderboardEntry, PositionProbe

logger = logging.getLogger(__name__)


def _to_int(v: Any) -> int | None:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def parse_top_entries(data: dict[str, Any]) -> list[LeaderboardEntry]:
    """World top from a /top response; empty list when the map has no records."""
    tops = (data or {}).get("tops") or []
    if not tops:
        return []
    entries: list[LeaderboardEntry] = []
    for raw in tops[0].get("top") or []:
        position = _to_int(raw.get("position"))
        if not raw.get("accountId") or position is None:
            continue
        score = _to_int(raw.get("score"))
        entries.append(
            LeaderboardEntry(
                account_id=raw["accountId"],
                login=raw.get("login"),
                position=position,
                score=score if score is not None and score >= 0 else None,
                timestamp=_to_int(raw.get("timestamp")),
                zone_name=raw.get("zoneName"),
            )
        )
    return entries


def parse_probe_response(data: Any) -> dict[str, PositionProbe]:
    out: dict[str, PositionProbe] = {}
    for item in data or []:
        map_uid = item.get("mapUid")
        zones = item.get("zones") or []
        if not map_uid or not zones:
            continue
        position = _to_int((zones[0].get("ranking") or {}).get("position"))
        if position is None:
            continue
        score = _to_int(item.get("score"))
        out[map_uid] = PositionProbe(map_uid, position, score if score is not None else SENTINEL_SCORE_MS)
    return out


class LeaderboardApi:
    """Leaderboard endpoints on the live provider."""

    def __init__(self, client: CredentialedClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    def get_top(
        self,
        map_uid: str,
        *,
        length: int = LEADERBOARD_TOP_LENGTH,
        only_world: bool = True,
        timeout: float | None = None,
    ) -> list[LeaderboardEntry]:
        url = f"{self._base_url}/api/token/leaderboard/group/{PERSONAL_BEST_GROUP}/map/{map_uid}/top"
        params: dict[str, Any] = {"length": length}
        if only_world:
            params["onlyWorld"] = "true"
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        return parse_top_entries(self._client.get_json(url, **kwargs))

    def _probe_batch(self, map_uids: list[str]) -> dict[str, PositionProbe]:
        url = f"{self._base_url}/api/token/leaderboard/group/map"
        params = {f"scores[{uid}]": str(SENTINEL_SCORE_MS) for uid in map_uids}
        body = {"maps": [{"mapUid": uid, "groupUid": PERSONAL_BEST_GROUP} for uid in map_uids]}
        return parse_probe_response(self._client.post_json(url, params=params, json=body))

    def probe_positions(
        self,
        map_uids: Iterable[str],
        *,
        retry: RetryPolicy = SCHEDULER_RETRY,
    ) -> dict[str, PositionProbe]:
        """
        Sentinel rank per map, in batches. A batch that still fails after retries is
        skipped: its maps are simply missing from the result.
        """
        uids = list(dict.fromkeys(map_uids))
        out: dict[str, PositionProbe] = {}
        for i in range(0, len(uids), POSITION_PROBE_BATCH_SIZE):
            batch = uids[i : i + POSITION_PROBE_BATCH_SIZE]
            try:
                out.update(retry.run(lambda: self._probe_batch(batch), name="position probe"))
            except Exception as e:
                logger.warning("Position probe batch %s-%s skipped: %s", i, i + len(batch), e)
        return out


def validate_period(period: str) -> str:
    period = (period or "").strip()
    if period not in PERIOD_HOURS:
        raise InvalidInputError(f"Invalid period {period!r}. Use one of: {', '.join(PERIOD_HOURS)}.")
    return period


def filter_by_period(
    entries: list[LeaderboardEntry],
    period: str,
    *,
    now: datetime | None = None,
) -> list[LeaderboardEntry]:
    """Entries whose record timestamp falls inside the trailing window of period."""
    hours = PERIOD_HOURS[validate_period(period)]
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(hours=hours)).timestamp()
    return [e for e in entries if e.get("timestamp") is not None and e["timestamp"] >= cutoff]


def apply_record_filter(entries: list[LeaderboardEntry], record_filter: str) -> list[LeaderboardEntry]:
    if record_filter == RECORD_FILTER_TOP5:
        return [e for e in entries if e["position"] <= 5]
    if record_filter == RECORD_FILTER_WR:
        return [e for e in entries if e["position"] == 1]
    if record_filter in (RECORD_FILTER_ALL, None, ""):
        return list(entries)
    raise InvalidInputError(f"Unknown record filter {record_filter!r}")
