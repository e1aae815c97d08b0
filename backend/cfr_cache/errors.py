"""Error kinds raised by the word-count cache.

The HTTP host maps these onto status codes; the core only raises them.
"""
from __future__ import annotations

from datetime import date


class CacheError(Exception):
    """Base class for every error the cache raises on purpose."""


class SnapshotNotFound(CacheError, LookupError):
    """No snapshot exists for the exact (title, date) key."""

    def __init__(self, title_number: int, snapshot_date: date):
        self.title_number = title_number
        self.snapshot_date = snapshot_date
        super().__init__(
            f"No snapshot for title {title_number} on {snapshot_date.isoformat()}"
        )


class InvalidRange(CacheError, ValueError):
    """History requested with start date after end date."""

    def __init__(self, start: date, end: date):
        self.start = start
        self.end = end
        super().__init__(
            f"Start date {start.isoformat()} must not be after end date {end.isoformat()}"
        )


class AgencyNotFound(CacheError, LookupError):
    """Agency slug not present anywhere in the agency hierarchy."""

    def __init__(self, slug: str, known_slugs: list[str] | None = None):
        self.slug = slug
        self.known_slugs = list(known_slugs or [])
        message = f"Agency with slug '{slug}' not found"
        if self.known_slugs:
            message += ". Please use one of the following slugs: " + ", ".join(self.known_slugs)
        super().__init__(message)


class StorageFailure(CacheError):
    """Persistence layer failed; the original error is chained as __cause__."""


class UpstreamError(CacheError):
    """The eCFR API did not return usable content."""


class UpstreamUnavailable(UpstreamError):
    """Non-retryable upstream failure (HTTP error, transport error)."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimited(UpstreamError):
    """Upstream answered 429; retried with backoff at the fetch boundary."""

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)
