"""Error taxonomy for the festival feed."""

from __future__ import annotations

from typing import Optional


class FestivalFeedError(Exception):
    """Base class for all festival feed errors."""


class CatalogError(FestivalFeedError):
    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"{status}: {message}" if status else message)
        self.status = status
        self.message = message


class RateLimited(CatalogError):
    """Catalog answered 429. Retryable later."""

    def __init__(self, message: str = "Rate limit reached - please try again later."):
        super().__init__(429, message)


class FetchFailed(CatalogError):
    """Network, HTTP or parse failure talking to the catalog."""


class LocationUnavailable(FestivalFeedError):
    """Location denied, unsupported, invalid or timed out."""


class EmptyResult(FestivalFeedError):
    """Valid response but zero usable events."""


class LogWriteFailed(FestivalFeedError):
    """Interaction log read or write failed."""


class SupersededRequest(FestivalFeedError):
    """A newer request for the same session started before this one finished."""
