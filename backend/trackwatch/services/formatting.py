"""
Plain-text notification content: new records per map, overflow summary, driver notices,
and the daily email that combines them.
"""
from datetime import datetime, timezone
from typing import Any, NamedTuple

from trackwatch.config import settings
from trackwatch.services.nadeo.types import LeaderboardEntry


class MapRecords(NamedTuple):
    """New leaderboard entries found on one map in this run."""

    map_uid: str
    map_name: str
    entries: list[LeaderboardEntry]
    new_players: int | None = None  # inaccurate mode: how far the sentinel rank moved


def format_race_time(ms: int | None) -> str:
    """12345 -> 12.345, 83456 -> 1:23.456, 3723004 -> 1:02:03.004."""
    if ms is None or ms < 0:
        return "-"
    hours, rem = divmod(int(ms), 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}.{millis:03d}"
    if minutes:
        return f"{minutes}:{seconds:02d}.{millis:03d}"
    return f"{seconds}.{millis:03d}"


def _format_date(timestamp: int | None) -> str:
    if timestamp is None:
        return "unknown date"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def is_popular(records: MapRecords) -> bool:
    return len(records.entries) > settings.max_new_records_per_map


def account_ids_to_resolve(map_records: list[MapRecords]) -> list[str]:
    """Ids whose names will be shown; popular maps only get a summary line."""
    ids: list[str] = []
    for records in map_records:
        if is_popular(records):
            continue
        ids.extend(e["account_id"] for e in records.entries)
    return list(dict.fromkeys(ids))


def format_new_records(map_records: list[MapRecords], names: dict[str, str]) -> str:
    blocks: list[str] = []
    for records in map_records:
        lines = [f"Map: {records.map_name}"]
        if records.new_players:
            lines.append(f"{records.new_players} new player(s) since the last check")
        if is_popular(records):
            lines.append(settings.popular_map_message)
        else:
            for e in records.entries:
                player = e.get("player_name") or names.get(e["account_id"]) or e["account_id"]
                zone = e.get("zone_name") or "World"
                lines.append(
                    f"  - {player} ({zone}): #{e['position']} in {format_race_time(e.get('score'))}"
                    f" on {_format_date(e.get('timestamp'))}"
                )
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_overflow_summary(changed_count: int, initialized_count: int) -> str:
    """Count-only text when too many maps moved to fetch them one by one. Empty if nothing changed."""
    if changed_count <= 0:
        return ""
    text = f"{changed_count} of your maps received new times since the last check."
    if initialized_count:
        text += f" {initialized_count} newly tracked map(s) will be reported from tomorrow."
    return text + " There were too many to list them individually today."


def _format_top(snapshot: list[dict[str, Any]], names: dict[str, str] | None = None, limit: int = 5) -> list[str]:
    lines = []
    for e in sorted(snapshot, key=lambda x: x.get("position") or 0)[:limit]:
        player = (names or {}).get(e.get("account_id", "")) or e.get("login") or e.get("account_id")
        lines.append(f"    {e.get('position')}. {player} - {format_race_time(e.get('score'))}")
    return lines


def format_driver_improved(
    map_name: str,
    old_position: int,
    new_position: int,
    new_score: int | None,
    snapshot: list[dict[str, Any]] | None = None,
    names: dict[str, str] | None = None,
) -> str:
    lines = [
        f"{map_name}: you improved from #{old_position} to #{new_position} ({format_race_time(new_score)})."
    ]
    if snapshot:
        lines.append("  Current top 5:")
        lines.extend(_format_top(snapshot, names))
    return "\n".join(lines)


def format_driver_beaten(map_name: str, old_position: int, new_position: int, still_tracked: bool) -> str:
    text = f"{map_name}: you were beaten and dropped from #{old_position} to #{new_position}."
    if not still_tracked:
        text += " You are out of the top 5, so this map is no longer tracked."
    return text


SUBJECT_BOTH = "Daily Update: New Records & Position Changes"
SUBJECT_MAPPER = "New times in {username}'s maps"
SUBJECT_DRIVER = "Position Changes on Tracked Maps"


def compose_daily_email(username: str, mapper_content: str | None, driver_content: str | None) -> tuple[str, str] | None:
    """(subject, body) for one outbox row, or None when there is nothing to send."""
    mapper = (mapper_content or "").strip()
    driver = (driver_content or "").strip()
    if mapper and driver:
        body = (
            f"Hello {username},\n\n"
            f"New records on your maps:\n\n{mapper}\n\n"
            f"Position changes on maps you track:\n\n{driver}\n"
        )
        return SUBJECT_BOTH, body
    if mapper:
        return SUBJECT_MAPPER.format(username=username), f"Hello {username},\n\nNew records on your maps:\n\n{mapper}\n"
    if driver:
        return SUBJECT_DRIVER, f"Hello {username},\n\nPosition changes on maps you track:\n\n{driver}\n"
    return None
