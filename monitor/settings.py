"""
Centralised settings for the monitor (env-first, code-light).

Credentials are optional for the browser engine (anonymous mode) but the
YouTube API key is required by the API engine, which refuses to start without it.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from crawler.pipelines.dedupe import dedupe_by_key
from monitor.config_loader import DEFAULT_CONFIG_PATH, configured_keywords, load_monitor_config
from utils.keywords import SEARCH_KEYWORDS

logger = logging.getLogger(__name__)


@dataclass
class TwitterCredentials:
    username: str
    password: str
    email: Optional[str] = None


@dataclass
class MonitorSettings:
    db_path: Path
    timezone: str
    search_keywords: List[str]
    twitter_credentials: Optional[TwitterCredentials]
    youtube_api_key: Optional[str]
    headless: bool = True
    browser_engine: str = "chromium"
    tweets_per_keyword: int = 8
    max_scroll_stagnation: int = 2
    max_deferred_details: int = 5
    twitter_request_interval: float = 8.0
    youtube_request_interval: float = 0.2
    keyword_pause_seconds: float = 10.0
    rate_limit_base_delay: float = 120.0
    rate_limit_max_retries: int = 3
    rate_limit_jitter: float = 10.0
    enrichment_batch_size: int = 100
    enrichment_workers: int = 4
    sentiment_positive_threshold: float = 0.8
    sentiment_negative_threshold: float = -0.8
    youtube_default_max_comments: int = 1000
    keyword_top_n: int = 10
    config_path: Optional[Path] = None


def _int_from_env(key: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default
    if value < minimum:
        logger.warning("%s=%s is below %s; using default %s", key, raw, minimum, default)
        return default
    return value


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float value for %s=%s; using default %s", key, raw, default)
        return default


def _bool_from_env(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    return str(raw).strip().lower() not in {"0", "false", "no", "off"}


def _parse_keywords(raw: str | None, fallback: Optional[List[str]] = None) -> List[str]:
    """Comma separated keywords or the fallback list, unique ignoring case."""
    keywords = [token.strip() for token in (raw or "").split(",") if token.strip()]
    return dedupe_by_key(keywords or list(fallback or SEARCH_KEYWORDS), str.lower)


def _twitter_credentials() -> Optional[TwitterCredentials]:
    username = os.getenv("TWITTER_USERNAME")
    password = os.getenv("TWITTER_PASSWORD")
    if not username or not password:
        return None
    return TwitterCredentials(username=username, password=password, email=os.getenv("TWITTER_EMAIL") or None)


def load_settings(dotenv_path: Optional[str] = None) -> MonitorSettings:
    load_dotenv(dotenv_path or os.getenv("GIZI_DOTENV", ".env"))
    db_path_env = os.getenv("GIZI_DB_PATH")
    config_env = os.getenv("GIZI_CONFIG")
    config_path = Path(config_env) if config_env else DEFAULT_CONFIG_PATH
    file_config = load_monitor_config(config_path) if config_path.exists() else {}
    return MonitorSettings(
        db_path=Path(db_path_env) if db_path_env else Path("data") / "gizi_monitor.db",
        timezone=os.getenv("GIZI_TIMEZONE", "Asia/Jakarta"),
        search_keywords=_parse_keywords(os.getenv("GIZI_SEARCH_KEYWORDS"), configured_keywords(file_config)),
        twitter_credentials=_twitter_credentials(),
        youtube_api_key=os.getenv("YOUTUBE_API_KEY") or None,
        headless=_bool_from_env("HEADLESS", True),
        browser_engine=os.getenv("BROWSER_ENGINE", "chromium"),
        tweets_per_keyword=_int_from_env("TWEETS_PER_KEYWORD", 8),
        max_scroll_stagnation=_int_from_env("MAX_SCROLL_STAGNATION", 2),
        max_deferred_details=_int_from_env("MAX_DEFERRED_DETAILS", 5, minimum=0),
        twitter_request_interval=_float_from_env("TWITTER_REQUEST_INTERVAL", 8.0),
        youtube_request_interval=_float_from_env("YOUTUBE_REQUEST_INTERVAL", 0.2),
        keyword_pause_seconds=_float_from_env("KEYWORD_PAUSE_SECONDS", 10.0),
        rate_limit_base_delay=_float_from_env("RATE_LIMIT_BASE_DELAY", 120.0),
        rate_limit_max_retries=_int_from_env("RATE_LIMIT_MAX_RETRIES", 3, minimum=0),
        rate_limit_jitter=_float_from_env("RATE_LIMIT_JITTER", 10.0),
        enrichment_batch_size=_int_from_env("ENRICHMENT_BATCH_SIZE", 100),
        enrichment_workers=_int_from_env("ENRICHMENT_WORKERS", 4),
        sentiment_positive_threshold=_float_from_env("SENTIMENT_POSITIVE_THRESHOLD", 0.8),
        sentiment_negative_threshold=_float_from_env("SENTIMENT_NEGATIVE_THRESHOLD", -0.8),
        youtube_default_max_comments=_int_from_env("YOUTUBE_DEFAULT_MAX_COMMENTS", 1000),
        keyword_top_n=_int_from_env("KEYWORD_TOP_N", 10),
        config_path=config_path if config_path.exists() else None,
    )
