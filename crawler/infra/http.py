"""
requests session factory with transport-level retries.

Only server errors are retried here. 429 and 403 reach the caller untouched so
the API client can tell rate limiting and quota exhaustion apart.
"""
from __future__ import annotations

from typing import Iterable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = "GiziMonitor/1.0"
SERVER_ERRORS = (500, 502, 503, 504)


def build_session(
    user_agent: Optional[str] = None,
    max_retries: int = 3,
    backoff_factor: float = 0.6,
    status_forcelist: Iterable[int] = SERVER_ERRORS,
) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=list(status_forcelist),
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(
        {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": "application/json",
        }
    )
    return session
