"""
Pydantic models for acquired items.
A RawPost is immutable once stored; engines build them, the store persists them.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Naive UTC timestamp, the storage convention of the SQLite store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_iso(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_naive_utc(dt)


class RawPost(BaseModel):
    platform: str
    external_id: str
    text: str
    author_id: str = ""
    author_handle: str = ""
    author_name: str = ""
    author_verified: bool = False
    likes: int = 0
    reposts: int = 0
    replies: int = 0
    hashtags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None
    acquired_at: datetime = Field(default_factory=utc_now)
    search_keyword: Optional[str] = None
    video_id: Optional[str] = None
    video_title: Optional[str] = None
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    parent_id: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("platform", mode="before")
    @classmethod
    def _platform_value(cls, value) -> str:
        return getattr(value, "value", value)

    @field_validator("text", mode="before")
    @classmethod
    def _trim_text(cls, value: Optional[str]) -> str:
        return (value or "").replace("\u200b", "").strip()

    @field_validator("author_handle", mode="before")
    @classmethod
    def _strip_at(cls, value: Optional[str]) -> str:
        return (value or "").strip().lstrip("@")

    @field_validator("likes", "reposts", "replies", mode="before")
    @classmethod
    def _zero_if_missing(cls, value) -> int:
        if value in (None, ""):
            return 0
        return int(value)

    @field_validator("published_at", "acquired_at", mode="after")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None or self.text.startswith("@")

    @property
    def is_repost(self) -> bool:
        return self.text.startswith("RT")


class VideoMetadata(BaseModel):
    id: str
    title: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: Optional[datetime] = None
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0

    @field_validator("view_count", "like_count", "comment_count", mode="before")
    @classmethod
    def _int_from_str(cls, value) -> int:
        if value in (None, ""):
            return 0
        return int(value)

    @field_validator("published_at", mode="after")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class ApiComment(BaseModel):
    id: str
    text: str
    author_name: str = ""
    author_channel_id: str = ""
    like_count: int = 0
    reply_count: int = 0
    parent_id: Optional[str] = None
    published_at: Optional[datetime] = None

    @field_validator("published_at", mode="after")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class CommentPage(BaseModel):
    comments: List[ApiComment] = Field(default_factory=list)
    next_page_token: Optional[str] = None
