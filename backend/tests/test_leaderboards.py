import pytest

from helpers import NOW, entry
from trackwatch.core.errors import InvalidInputError, TransientUpstreamError
from trackwatch.services.nadeo.leaderboards import (
    LeaderboardApi,
    apply_record_filter,
    filter_by_period,
    parse_probe_response,
    parse_top_entries,
    validate_period,
)
from trackwatch.services.nadeo.types import PositionProbe


class FakeClient:
    """Records get_json/post_json calls; post responses are scripted per call."""

    def __init__(self, get_response=None, post_responses=()):
        self.get_response = get_response
        self.post_responses = list(post_responses)
        self.gets: list[tuple[str, dict]] = []
        self.posts: list[tuple[str, dict]] = []

    def get_json(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return self.get_response

    def post_json(self, url, **kwargs):
        self.posts.append((url, kwargs))
        result = self.post_responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _probe_item(uid, position, score=9999999):
    return {"mapUid": uid, "score": score, "zones": [{"zoneName": "World", "ranking": {"position": position}}]}


def test_parse_top_entries_normalizes_and_drops_negative_scores():
    data = {
        "tops": [
            {
                "zoneName": "World",
                "top": [
                    {"accountId": "a1", "zoneName": "France", "position": 1, "score": 45123, "timestamp": 1700000000},
                    {"accountId": "a2", "position": "2", "score": -1, "timestamp": 1700000001},
                    {"position": 3, "score": 46000},
                ],
            }
        ]
    }
    entries = parse_top_entries(data)
    assert [e["account_id"] for e in entries] == ["a1", "a2"]
    assert entries[0]["zone_name"] == "France"
    assert entries[1]["position"] == 2
    assert entries[1]["score"] is None


def test_parse_top_entries_empty_map():
    assert parse_top_entries({"tops": []}) == []
    assert parse_top_entries({}) == []


def test_parse_probe_response_skips_maps_without_ranking():
    probes = parse_probe_response([_probe_item("M1", 12), {"mapUid": "M2", "zones": []}])
    assert probes == {"M1": PositionProbe("M1", 12, 9999999)}


def test_get_top_builds_world_query():
    client = FakeClient(get_response={"tops": [{"top": [{"accountId": "a1", "position": 1, "score": 1}]}]})
    api = LeaderboardApi(client, "https://live.example/")

    entries = api.get_top("MAP1", length=5, only_world=False, timeout=10)

    url, kwargs = client.gets[0]
    assert url == "https://live.example/api/token/leaderboard/group/Personal_Best/map/MAP1/top"
    assert kwargs == {"params": {"length": 5}, "timeout": 10}
    assert entries[0]["account_id"] == "a1"

    api.get_top("MAP1")
    assert client.gets[1][1] == {"params": {"length": 100, "onlyWorld": "true"}}


def test_probe_positions_batches_of_fifty_with_sentinel_score(no_retry):
    uids = [f"M{i}" for i in range(120)]
    client = FakeClient(
        post_responses=[
            [_probe_item(u, 10) for u in uids[:50]],
            [_probe_item(u, 20) for u in uids[50:100]],
            [_probe_item(u, 30) for u in uids[100:]],
        ]
    )
    api = LeaderboardApi(client, "https://live.example")

    probes = api.probe_positions(uids + ["M0"], retry=no_retry)

    assert len(client.posts) == 3
    url, kwargs = client.posts[0]
    assert url == "https://live.example/api/token/leaderboard/group/map"
    assert kwargs["params"]["scores[M0]"] == "9999999"
    assert kwargs["json"]["maps"][0] == {"mapUid": "M0", "groupUid": "Personal_Best"}
    assert len(kwargs["json"]["maps"]) == 50
    assert len(probes) == 120
    assert probes["M119"].position == 30


def test_failed_probe_batch_is_skipped_after_retries(quick_retry, sleeps):
    uids = [f"M{i}" for i in range(60)]
    boom = TransientUpstreamError("503")
    client = FakeClient(post_responses=[boom, boom, boom, [_probe_item(u, 4) for u in uids[50:]]])
    api = LeaderboardApi(client, "https://live.example")

    probes = api.probe_positions(uids, retry=quick_retry)

    assert len(client.posts) == 4
    assert sleeps == [1.0, 2.0]
    assert sorted(probes) == sorted(uids[50:])


@pytest.mark.parametrize("period", ["1d", "1w", "1m", " 1w "])
def test_validate_period_accepts_known_periods(period):
    assert validate_period(period) == period.strip()


@pytest.mark.parametrize("period", ["", "2d", "1y", None])
def test_validate_period_rejects_unknown(period):
    with pytest.raises(InvalidInputError):
        validate_period(period)


def test_filter_by_period_uses_trailing_window():
    entries = [entry("a", 1, hours_ago=2), entry("b", 2, hours_ago=30), entry("c", 3, hours_ago=24 * 8)]
    entries.append({"account_id": "d", "position": 4, "score": 1, "timestamp": None})

    assert [e["account_id"] for e in filter_by_period(entries, "1d", now=NOW)] == ["a"]
    assert [e["account_id"] for e in filter_by_period(entries, "1w", now=NOW)] == ["a", "b"]
    assert [e["account_id"] for e in filter_by_period(entries, "1m", now=NOW)] == ["a", "b", "c"]


def test_apply_record_filter():
    entries = [entry("a", 1), entry("b", 5), entry("c", 6)]
    assert len(apply_record_filter(entries, "all")) == 3
    assert [e["account_id"] for e in apply_record_filter(entries, "top5")] == ["a", "b"]
    assert [e["account_id"] for e in apply_record_filter(entries, "wr")] == ["a"]
    with pytest.raises(InvalidInputError):
        apply_record_filter(entries, "top3")
