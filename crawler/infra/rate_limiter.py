"""
Request throttling and rate-limit backoff shared by both acquisition engines.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Iterable, Optional, TypeVar

from crawler.errors import RETRYABLE_ERRORS, RateLimitedError, RetriesExhaustedError
from crawler.infra.cancel import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = (
    "rate limit",
    "rate limited",
    "too many requests",
    "429",
    "please wait a few moments",
    "you are rate limited",
)


def is_rate_limited(signal: object, markers: Iterable[str] = RATE_LIMIT_MARKERS) -> bool:
    """Classify an exception or a chunk of rendered page text."""
    if signal is None:
        return False
    if isinstance(signal, RateLimitedError):
        return True
    text = str(signal).lower()
    if not text:
        return False
    return any(marker in text for marker in markers)


class RateLimiter:
    """
    Single-slot limiter: a call waits until ``min_interval`` seconds passed since the previous call.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_hit: Optional[float] = None
        self._lock = threading.Lock()

    def throttle(self) -> float:
        """Block until the interval elapsed. Returns the seconds waited."""
        waited = 0.0
        with self._lock:
            now = self._clock()
            if self._last_hit is not None and now - self._last_hit < self.min_interval:
                waited = self.min_interval - (now - self._last_hit)
                logger.debug("Throttling: waiting %.2fs before next request", waited)
                self._sleep(waited)
            self._last_hit = self._clock()
        return waited

    @staticmethod
    def is_rate_limited(signal: object) -> bool:
        return is_rate_limited(signal)


class BackoffPolicy:
    """
    Exponential backoff for detected rate limiting: ``base_delay * 2 ** attempt`` plus jitter.
    """

    def __init__(
        self,
        base_delay: float = 120.0,
        max_retries: int = 3,
        jitter: float = 10.0,
        sleep: Optional[Callable[[float], object]] = None,
        cancel: Optional[CancelToken] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.base_delay = base_delay
        self.max_retries = max_retries
        self.jitter = jitter
        self.cancel = cancel
        self._rng = rng or random.Random()
        if sleep is not None:
            self._sleep = sleep
        elif cancel is not None:
            self._sleep = cancel.wait
        else:
            self._sleep = time.sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def jittered(self, attempt: int) -> float:
        return self.delay_for(attempt) + self._rng.uniform(0, self.jitter)

    def run(
        self,
        operation: Callable[[], T],
        recover: Optional[Callable[[], object]] = None,
        label: str = "request",
    ) -> T:
        attempt = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                if not isinstance(exc, RETRYABLE_ERRORS) and not is_rate_limited(exc):
                    raise
                if attempt >= self.max_retries:
                    raise RetriesExhaustedError(label, attempt, exc) from exc
                if self.cancel is not None and self.cancel.cancelled:
                    raise RetriesExhaustedError(label, attempt, exc) from exc
                delay = self.jittered(attempt)
                attempt += 1
                logger.warning(
                    "Rate limit for %s, retrying in %.0fs (attempt %d/%d): %s",
                    label,
                    delay,
                    attempt,
                    self.max_retries,
                    exc,
                )
                self._sleep(delay)
                if self.cancel is not None and self.cancel.cancelled:
                    raise RetriesExhaustedError(label, attempt, exc) from exc
                if recover is not None:
                    try:
                        recover()
                    except Exception as recover_exc:
                        logger.debug("Recovery step for %s failed: %s", label, recover_exc)
