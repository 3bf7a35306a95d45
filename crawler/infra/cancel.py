"""
Cooperative cancellation shared between a signal handler and the engines.
"""
from __future__ import annotations

import logging
import signal
import threading
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.info("Cancellation requested (%s), stopping after current step", reason)
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        if seconds <= 0:
            return self.cancelled
        return self._event.wait(seconds)


def install_signal_handlers(
    token: CancelToken,
    signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
    on_signal: Optional[Callable[[], object]] = None,
) -> None:
    """Route SIGINT/SIGTERM into ``token``. Only valid from the main thread."""

    def _handler(signum, _frame):
        token.cancel(signal.Signals(signum).name)
        if on_signal is not None:
            on_signal()

    for signum in signals:
        signal.signal(signum, _handler)
