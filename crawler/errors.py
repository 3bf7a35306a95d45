"""
Exception hierarchy shared by the acquisition engines and the orchestrator.

Retryable errors are handled by the backoff controller inside an engine.
Terminal-per-unit errors abort one keyword/target and the run continues.
Fatal errors abort the whole run.
"""
from __future__ import annotations


class AcquisitionError(Exception):
    """Base class for acquisition failures."""


class RateLimitedError(AcquisitionError):
    """The remote side signalled rate limiting (page text, HTTP 429, ...)."""


class NavigationTimeoutError(AcquisitionError):
    """A navigation or selector wait timed out."""


class RetriesExhaustedError(AcquisitionError):
    def __init__(self, label: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label}: gave up after {attempts} retries ({last_error})")


class LoginFailedError(AcquisitionError):
    """Login could not be completed or verified."""


class LoginRequiredError(AcquisitionError):
    """The feed demanded a login but no credentials are configured."""


class QuotaExceededError(AcquisitionError):
    """Remote API quota hard stop. Never retried."""


class TargetUnavailableError(AcquisitionError):
    """Target does not exist or does not expose content (404, comments disabled)."""


class SessionUnavailableError(AcquisitionError):
    """The browser session could not be established at all."""


class ConfigurationError(Exception):
    """Required configuration is missing for an engine."""


RETRYABLE_ERRORS = (RateLimitedError, NavigationTimeoutError)

TERMINAL_UNIT_ERRORS = (
    RetriesExhaustedError,
    LoginFailedError,
    LoginRequiredError,
    QuotaExceededError,
    TargetUnavailableError,
)

FATAL_RUN_ERRORS = (SessionUnavailableError, ConfigurationError)
