"""
Exception taxonomy shared by adapters, fusion, and the vessel services.

Adapters never leak raw httpx / XML / JSON errors to their callers: every
failed fetch surfaces as a SourceFetchError. Providers that signal
too-many-requests surface as RateLimitedError so batch logic can back off
without inspecting message text.
"""

from typing import Optional


class CoastWatchError(Exception):
    """Base class for all CoastWatch errors."""


class ConfigError(CoastWatchError):
    """Configuration is missing or invalid. Raised at startup only."""


class SourceFetchError(CoastWatchError):
    """
    A single fetch against an external source failed.

    Covers network errors, timeouts, non-2xx responses and unparseable
    payloads. The adapter has already recorded the failure in its health
    tracker by the time this is raised.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class RateLimitedError(SourceFetchError):
    """The provider answered with a too-many-requests condition."""

    def __init__(self, source: str, retry_after: Optional[float] = None) -> None:
        super().__init__(source, "rate limited")
        self.retry_after = retry_after


class StreamFatalError(CoastWatchError):
    """The streaming connection exhausted its reconnect budget."""

    def __init__(self, attempts: int, last_error: Optional[str] = None) -> None:
        detail = f" | last_error={last_error}" if last_error else ""
        super().__init__(f"gave up after {attempts} reconnect attempts{detail}")
        self.attempts = attempts
        self.last_error = last_error
