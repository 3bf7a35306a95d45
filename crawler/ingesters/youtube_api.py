"""
YouTube Data API v3 comment acquisition.

`YouTubeApiClient` wraps the three endpoints the collector needs and keeps a
local quota estimate. `YouTubeCollector` is the acquisition engine: its units
are the video ids derived from the whitelist, each fetched page by page until
the target's cap or the end of the continuation tokens.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from crawler.errors import (
    TERMINAL_UNIT_ERRORS,
    AcquisitionError,
    ConfigurationError,
    NavigationTimeoutError,
    QuotaExceededError,
    RateLimitedError,
    TargetUnavailableError,
)
from crawler.infra.cancel import CancelToken
from crawler.infra.http import build_session
from crawler.infra.rate_limiter import BackoffPolicy, RateLimiter
from crawler.schemas.models import ApiComment, CommentPage, RawPost, VideoMetadata, parse_iso
from monitor.models import Platform, TargetType
from monitor.settings import MonitorSettings
from monitor.text import extract_hashtags, extract_mentions
from utils.security import redact_secrets

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"
QUOTA_COSTS = {"commentThreads": 1, "videos": 1, "search": 100}
MAX_COMMENTS_PER_PAGE = 100
MAX_IDS_PER_METADATA_CALL = 50
MAX_SEARCH_RESULTS = 50
QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded"})
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def _error_reasons(response: requests.Response) -> List[str]:
    try:
        payload = response.json()
    except ValueError:
        return []
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return []
    return [str(item.get("reason")) for item in error.get("errors") or [] if isinstance(item, dict)]


def _parse_comment(snippet: Dict[str, Any], comment_id: str, parent_id: Optional[str] = None) -> ApiComment:
    channel = snippet.get("authorChannelId")
    return ApiComment(
        id=comment_id,
        text=snippet.get("textDisplay") or snippet.get("textOriginal") or "",
        author_name=snippet.get("authorDisplayName") or "",
        author_channel_id=(channel or {}).get("value", "") if isinstance(channel, dict) else (channel or ""),
        like_count=snippet.get("likeCount") or 0,
        reply_count=snippet.get("totalReplyCount") or 0,
        parent_id=parent_id,
        published_at=parse_iso(snippet.get("publishedAt")),
    )


class YouTubeApiClient:
    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: int = 10,
        base_url: str = API_BASE,
    ) -> None:
        if not api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")
        self.api_key = api_key
        self.session = session or build_session()
        self.timeout = timeout
        self.base_url = base_url
        self.quota_used = 0

    def _get(self, endpoint: str, params: Dict[str, Any], target: str) -> Dict[str, Any]:
        query = dict(params, key=self.api_key)
        try:
            response = self.session.get(f"{self.base_url}/{endpoint}", params=query, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise NavigationTimeoutError(redact_secrets(f"{endpoint} request failed for {target}: {exc}")) from exc
        # quota is charged for rejected calls too
        self.quota_used += QUOTA_COSTS[endpoint]
        if response.status_code == 200:
            return response.json()
        raise self._error_for(response, endpoint, target)

    def _error_for(self, response: requests.Response, endpoint: str, target: str) -> AcquisitionError:
        status = response.status_code
        reasons = _error_reasons(response)
        detail = redact_secrets(f"{endpoint} {target}: HTTP {status} {','.join(reasons) or response.text[:200]}")
        logger.warning("YouTube API error %s", detail)
        if status == 429 or (status == 403 and RATE_LIMIT_REASONS.intersection(reasons)):
            return RateLimitedError(detail)
        if status == 403 and QUOTA_REASONS.intersection(reasons):
            return QuotaExceededError(detail)
        if status == 404 or (status == 403 and "commentsDisabled" in reasons):
            return TargetUnavailableError(detail)
        if status == 403:
            return QuotaExceededError(detail)
        return TargetUnavailableError(detail)

    def fetch_comments(self, video_id: str, max_results: int = MAX_COMMENTS_PER_PAGE,
                       page_token: Optional[str] = None) -> CommentPage:
        params: Dict[str, Any] = {
            "part": "snippet,replies",
            "videoId": video_id,
            "maxResults": min(max_results, MAX_COMMENTS_PER_PAGE),
            "order": "relevance",
            "textFormat": "plainText",
        }
        if page_token:
            params["pageToken"] = page_token
        payload = self._get("commentThreads", params, video_id)

        comments: List[ApiComment] = []
        for item in payload.get("items") or []:
            top = item.get("snippet", {}).get("topLevelComment", {})
            comments.append(_parse_comment(top.get("snippet", {}), item.get("id") or top.get("id", "")))
            for reply in (item.get("replies") or {}).get("comments") or []:
                comments.append(_parse_comment(reply.get("snippet", {}), reply.get("id", ""), parent_id=item.get("id")))
        return CommentPage(comments=comments, next_page_token=payload.get("nextPageToken"))

    def fetch_video_metadata(self, video_ids: Sequence[str]) -> List[VideoMetadata]:
        if len(video_ids) > MAX_IDS_PER_METADATA_CALL:
            raise ValueError(f"at most {MAX_IDS_PER_METADATA_CALL} ids per metadata call")
        if not video_ids:
            return []
        payload = self._get(
            "videos",
            {"part": "snippet,contentDetails,statistics", "id": ",".join(video_ids), "maxResults": 50},
            f"{len(video_ids)} videos",
        )
        videos: List[VideoMetadata] = []
        for item in payload.get("items") or []:
            snippet = item.get("snippet") or {}
            stats = item.get("statistics") or {}
            videos.append(
                VideoMetadata(
                    id=item.get("id", ""),
                    title=snippet.get("title") or "",
                    channel_id=snippet.get("channelId") or "",
                    channel_title=snippet.get("channelTitle") or "",
                    published_at=parse_iso(snippet.get("publishedAt")),
                    view_count=stats.get("viewCount"),
                    like_count=stats.get("likeCount"),
                    comment_count=stats.get("commentCount"),
                )
            )
        return videos

    def search_channel_videos(self, channel_id: str, published_after: Optional[str] = None,
                              max_results: int = MAX_SEARCH_RESULTS) -> List[str]:
        params: Dict[str, Any] = {
            "part": "snippet",
            "channelId": channel_id,
            "type": "video",
            "order": "date",
            "maxResults": min(max_results, MAX_SEARCH_RESULTS),
        }
        if published_after:
            params["publishedAfter"] = published_after
        payload = self._get("search", params, channel_id)
        return [item["id"]["videoId"] for item in payload.get("items") or [] if (item.get("id") or {}).get("videoId")]


@dataclass
class CollectTarget:
    video_id: str
    cap: int
    source_type: TargetType
    source_id: str


class YouTubeCollector:
    platform = Platform.YOUTUBE

    def __init__(
        self,
        client: YouTubeApiClient,
        whitelist,
        settings: MonitorSettings,
        cancel: Optional[CancelToken] = None,
        limiter: Optional[RateLimiter] = None,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        self.client = client
        self.whitelist = whitelist
        self.settings = settings
        self.cancel = cancel or CancelToken()
        self.limiter = limiter or RateLimiter(settings.youtube_request_interval)
        self.backoff = backoff or BackoffPolicy(
            base_delay=settings.rate_limit_base_delay,
            max_retries=settings.rate_limit_max_retries,
            jitter=settings.rate_limit_jitter,
            cancel=self.cancel,
        )
        self.targets: Dict[str, CollectTarget] = {}
        self.metadata: Dict[str, VideoMetadata] = {}
        self._pages = 0

    def __enter__(self) -> "YouTubeCollector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.client.session.close()

    def units(self) -> List[str]:
        """Resolve the whitelist to video ids (priority order) and prefetch their metadata."""
        self.targets = {}
        default_cap = self.settings.youtube_default_max_comments
        for entry in self.whitelist.list_active_targets(TargetType.VIDEO):
            if entry.target_id not in self.targets:
                self.targets[entry.target_id] = CollectTarget(
                    entry.target_id, entry.max_items or default_cap, TargetType.VIDEO, entry.target_id
                )
        for entry in self.whitelist.list_active_targets(TargetType.CHANNEL):
            if self.cancel.cancelled:
                break
            try:
                video_ids = self.client.search_channel_videos(entry.target_id)
            except TERMINAL_UNIT_ERRORS as exc:
                logger.warning("Could not list videos for channel %s: %s", entry.target_id, exc)
                continue
            for video_id in video_ids:
                if video_id not in self.targets:
                    self.targets[video_id] = CollectTarget(
                        video_id, entry.max_items or default_cap, TargetType.CHANNEL, entry.target_id
                    )
        if not self.targets:
            logger.warning("No active YouTube targets in whitelist")
            return []
        self._prefetch_metadata(list(self.targets))
        return list(self.targets)

    def _prefetch_metadata(self, video_ids: List[str]) -> None:
        for start in range(0, len(video_ids), MAX_IDS_PER_METADATA_CALL):
            batch = video_ids[start:start + MAX_IDS_PER_METADATA_CALL]
            try:
                for video in self.client.fetch_video_metadata(batch):
                    self.metadata[video.id] = video
            except TERMINAL_UNIT_ERRORS as exc:
                logger.warning("Metadata prefetch failed for %d videos: %s", len(batch), exc)
        logger.info("Fetched metadata for %d/%d videos", len(self.metadata), len(video_ids))

    def acquire(self, unit: str) -> List[RawPost]:
        target = self.targets.get(unit) or CollectTarget(
            unit, self.settings.youtube_default_max_comments, TargetType.VIDEO, unit
        )
        comments = self._collect(target)
        if comments:
            self.whitelist.record_collected(target.source_type, target.source_id, len(comments))
        meta = self.metadata.get(unit)
        logger.info("Video %s (%s): %d comments", unit, meta.title if meta else "?", len(comments))
        return [self._to_raw_post(comment, unit, meta) for comment in comments]

    def _collect(self, target: CollectTarget) -> List[ApiComment]:
        collected: List[ApiComment] = []
        page_token: Optional[str] = None
        while len(collected) < target.cap and not self.cancel.cancelled:
            remaining = target.cap - len(collected)
            self.limiter.throttle()
            token = page_token
            page = self.backoff.run(
                lambda: self.client.fetch_comments(target.video_id, min(remaining, MAX_COMMENTS_PER_PAGE), token),
                label=f"comments {target.video_id}",
            )
            self._pages += 1
            collected.extend(page.comments)
            logger.debug("Collected %d comments, total %d/%d", len(page.comments), len(collected), target.cap)
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        return collected[:target.cap]

    @staticmethod
    def _to_raw_post(comment: ApiComment, video_id: str, meta: Optional[VideoMetadata]) -> RawPost:
        return RawPost(
            platform=Platform.YOUTUBE,
            external_id=comment.id,
            text=comment.text,
            hashtags=extract_hashtags(comment.text),
            mentions=extract_mentions(comment.text),
            author_id=comment.author_channel_id,
            author_name=comment.author_name,
            likes=comment.like_count,
            replies=comment.reply_count,
            published_at=comment.published_at,
            video_id=video_id,
            video_title=meta.title if meta else None,
            channel_id=meta.channel_id if meta else None,
            channel_title=meta.channel_title if meta else None,
            parent_id=comment.parent_id,
        )

    def stats(self) -> Dict[str, int]:
        return {
            "quota_used": self.client.quota_used,
            "targets": len(self.targets),
            "pages": self._pages,
        }


def build_youtube_engine(settings: MonitorSettings, cancel: CancelToken, whitelist) -> YouTubeCollector:
    if not settings.youtube_api_key:
        raise ConfigurationError("YOUTUBE_API_KEY is required for YouTube acquisition")
    return YouTubeCollector(YouTubeApiClient(settings.youtube_api_key), whitelist, settings, cancel)
