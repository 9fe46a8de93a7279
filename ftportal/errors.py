"""
Exception types shared across the pipeline.

Per-item errors (fetch, navigation) are caught close to where they happen and
turned into empty fields. Only StateCorruptionError and SourceUnavailableError
are expected to reach the caller.
"""

from typing import Optional


class FetchError(Exception):
    """Base class for structured-endpoint fetch failures."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientFetchError(FetchError):
    """Network error, timeout, 5xx or 429. Worth retrying."""

    @property
    def rate_limited(self) -> bool:
        return self.status == 429


class PermanentFetchError(FetchError):
    """Non-retryable HTTP status (404, 403, ...)."""


class NavigationError(Exception):
    """The render surface could not load a page."""


class StateCorruptionError(Exception):
    """The incremental state file exists but cannot be read."""


class SourceUnavailableError(Exception):
    """The first listing page of a source could not be loaded."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
