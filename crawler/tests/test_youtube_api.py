import pytest
import requests

from crawler.errors import (
    ConfigurationError,
    NavigationTimeoutError,
    QuotaExceededError,
    RateLimitedError,
    TargetUnavailableError,
)
from crawler.infra.rate_limiter import BackoffPolicy, RateLimiter
from crawler.ingesters.youtube_api import YouTubeApiClient, YouTubeCollector, build_youtube_engine
from monitor.models import TargetType, WhitelistEntry
from monitor.settings import MonitorSettings


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    """requests.Session stand-in; queued responses (or exceptions) per endpoint."""

    def __init__(self, routes):
        self.routes = {endpoint: list(queue) for endpoint, queue in routes.items()}
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        endpoint = url.rsplit("/", 1)[-1]
        self.calls.append((endpoint, dict(params or {})))
        outcome = self.routes[endpoint].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def api_error(status, reason):
    return FakeResponse(status, {"error": {"code": status, "errors": [{"reason": reason}]}})


def thread(thread_id, text, replies=()):
    item = {
        "id": thread_id,
        "snippet": {
            "topLevelComment": {
                "id": thread_id,
                "snippet": {
                    "textDisplay": text,
                    "authorDisplayName": "Ibu Rina",
                    "authorChannelId": {"value": "UCrina"},
                    "likeCount": 4,
                    "totalReplyCount": len(replies),
                    "publishedAt": "2025-03-01T02:00:00Z",
                },
            }
        },
    }
    if replies:
        item["replies"] = {
            "comments": [
                {"id": f"{thread_id}.{n}", "snippet": {"textDisplay": reply, "authorDisplayName": "Pak Andi"}}
                for n, reply in enumerate(replies)
            ]
        }
    return item


def comments_page(items, token=None):
    payload = {"items": items}
    if token:
        payload["nextPageToken"] = token
    return FakeResponse(200, payload)


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        YouTubeApiClient("")


def test_fetch_comments_includes_replies_and_counts_quota():
    session = FakeSession({"commentThreads": [comments_page([thread("t1", "Menu MBG enak", ["Setuju"])], "next")]})
    client = YouTubeApiClient("secret-key", session=session)

    page = client.fetch_comments("vid00000001", max_results=500)

    assert [c.id for c in page.comments] == ["t1", "t1.0"]
    assert page.comments[0].author_channel_id == "UCrina"
    assert page.comments[0].parent_id is None
    assert page.comments[1].parent_id == "t1"
    assert page.next_page_token == "next"
    assert client.quota_used == 1
    endpoint, params = session.calls[0]
    assert params["maxResults"] == 100
    assert params["key"] == "secret-key"
    assert "pageToken" not in params


@pytest.mark.parametrize(
    "response, error",
    [
        (api_error(403, "quotaExceeded"), QuotaExceededError),
        (api_error(403, "dailyLimitExceeded"), QuotaExceededError),
        (api_error(403, "rateLimitExceeded"), RateLimitedError),
        (FakeResponse(429), RateLimitedError),
        (api_error(403, "commentsDisabled"), TargetUnavailableError),
        (api_error(404, "videoNotFound"), TargetUnavailableError),
        (api_error(403, "forbidden"), QuotaExceededError),
        (FakeResponse(500, {"error": {}}), TargetUnavailableError),
    ],
)
def test_error_mapping(response, error):
    client = YouTubeApiClient("secret-key", session=FakeSession({"commentThreads": [response]}))
    with pytest.raises(error):
        client.fetch_comments("vid00000001")
    assert client.quota_used == 1


def test_transport_failure_is_retryable_and_redacted():
    failure = requests.ConnectionError("GET https://x/commentThreads?key=secret-key failed")
    client = YouTubeApiClient("secret-key", session=FakeSession({"commentThreads": [failure]}))

    with pytest.raises(NavigationTimeoutError) as info:
        client.fetch_comments("vid00000001")
    assert "secret-key" not in str(info.value)
    assert client.quota_used == 0


def test_metadata_batch_limit():
    client = YouTubeApiClient("secret-key", session=FakeSession({}))
    with pytest.raises(ValueError):
        client.fetch_video_metadata([f"v{n}" for n in range(51)])
    assert client.fetch_video_metadata([]) == []


def test_metadata_and_search_parsing():
    session = FakeSession(
        {
            "videos": [
                FakeResponse(200, {"items": [{"id": "vid00000001", "snippet": {"title": "Liputan MBG",
                                                                               "channelId": "UCnews"},
                                              "statistics": {"viewCount": "1200", "commentCount": "30"}}]})
            ],
            "search": [FakeResponse(200, {"items": [{"id": {"videoId": "vid00000002"}}, {"id": {"kind": "x"}}]})],
        }
    )
    client = YouTubeApiClient("secret-key", session=session)

    videos = client.fetch_video_metadata(["vid00000001"])
    assert videos[0].title == "Liputan MBG"
    assert videos[0].view_count == 1200
    assert videos[0].like_count == 0
    assert client.search_channel_videos("UCnews") == ["vid00000002"]
    assert client.quota_used == 101


class FakeWhitelist:
    def __init__(self, entries):
        self.entries = entries
        self.recorded = []

    def list_active_targets(self, target_type):
        return [entry for entry in self.entries if entry.target_type is target_type]

    def record_collected(self, target_type, target_id, count):
        self.recorded.append((target_type, target_id, count))


def settings():
    return MonitorSettings(
        db_path="unused.db",
        timezone="Asia/Jakarta",
        search_keywords=[],
        twitter_credentials=None,
        youtube_api_key="secret-key",
        youtube_default_max_comments=50,
    )


def collector(session, entries):
    client = YouTubeApiClient("secret-key", session=session)
    whitelist = FakeWhitelist(entries)
    engine = YouTubeCollector(
        client,
        whitelist,
        settings(),
        limiter=RateLimiter(0.0),
        backoff=BackoffPolicy(base_delay=0.0, max_retries=1, jitter=0.0, sleep=lambda _: None),
    )
    return engine, whitelist


def test_collector_stops_at_target_cap_and_records_progress():
    session = FakeSession(
        {
            "videos": [FakeResponse(200, {"items": [{"id": "vid00000001", "snippet": {"title": "Liputan MBG"}}]})],
            "commentThreads": [
                comments_page([thread("a", "satu"), thread("b", "dua")], "p2"),
                comments_page([thread("c", "tiga"), thread("d", "empat")], "p3"),
            ],
        }
    )
    engine, whitelist = collector(session, [WhitelistEntry(TargetType.VIDEO, "vid00000001", max_items=3)])

    with engine:
        units = engine.units()
        posts = engine.acquire("vid00000001")

    assert units == ["vid00000001"]
    assert [post.external_id for post in posts] == ["a", "b", "c"]
    assert posts[0].platform == "youtube"
    assert posts[0].video_title == "Liputan MBG"
    assert whitelist.recorded == [(TargetType.VIDEO, "vid00000001", 3)]
    assert session.calls[-1][1]["pageToken"] == "p2"
    assert session.calls[-1][1]["maxResults"] == 1
    assert engine.stats() == {"quota_used": 3, "targets": 1, "pages": 2}
    assert session.closed is True


def test_units_put_videos_before_channel_videos_and_skip_failing_channels():
    session = FakeSession(
        {
            "search": [
                api_error(404, "channelNotFound"),
                FakeResponse(200, {"items": [{"id": {"videoId": "vid00000001"}}, {"id": {"videoId": "vid00000009"}}]}),
            ],
            "videos": [FakeResponse(200, {"items": []})],
        }
    )
    entries = [
        WhitelistEntry(TargetType.VIDEO, "vid00000001", priority=1),
        WhitelistEntry(TargetType.CHANNEL, "UCgone"),
        WhitelistEntry(TargetType.CHANNEL, "UCnews", max_items=10),
    ]
    engine, _ = collector(session, entries)

    assert engine.units() == ["vid00000001", "vid00000009"]
    assert engine.targets["vid00000009"].source_type is TargetType.CHANNEL
    assert engine.targets["vid00000009"].source_id == "UCnews"
    assert engine.targets["vid00000009"].cap == 10
    assert engine.targets["vid00000001"].cap == 50


def test_comment_hashtags_and_mentions_are_kept():
    session = FakeSession(
        {"commentThreads": [comments_page([thread("a", "Setuju @PakMenteri, #MBG harus lanjut #mbg #GiziAnak")])]}
    )
    engine, _ = collector(session, [])

    posts = engine.acquire("vid00000001")

    assert posts[0].hashtags == ["mbg", "gizianak"]
    assert posts[0].mentions == ["PakMenteri"]


def test_empty_video_records_nothing():
    session = FakeSession({"commentThreads": [comments_page([])]})
    engine, whitelist = collector(session, [])

    assert engine.units() == []
    assert engine.acquire("vid00000001") == []
    assert whitelist.recorded == []


def test_engine_factory_requires_api_key():
    config = settings()
    config.youtube_api_key = None
    with pytest.raises(ConfigurationError):
        build_youtube_engine(config, cancel=None, whitelist=FakeWhitelist([]))
