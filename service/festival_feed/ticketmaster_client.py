"""Ticketmaster Discovery API client for the festival feed."""

from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

import requests

from . import settings
from .errors import FetchFailed, RateLimited

SORT_RELEVANCE = "relevance,desc"
SORT_DATE = "date,asc"
MAX_PAGE_SIZE = 200

_ZIP_RE = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class EventFilter:
    keyword: Optional[str] = None
    classification_name: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: Optional[float] = None
    unit: str = "miles"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    size: int = 20
    sort: str = SORT_RELEVANCE

    def with_location_text(self, text: Optional[str]) -> "EventFilter":
        """A 5-digit string is a postal code, anything else is a city name."""
        text = (text or "").strip()
        if not text:
            return self
        if _ZIP_RE.match(text):
            return replace(self, postal_code=text, city=None)
        return replace(self, city=text, postal_code=None)

    def to_params(self, api_key: str) -> dict[str, str]:
        params: dict[str, str] = {
            "apikey": api_key,
            "size": str(max(1, min(self.size, MAX_PAGE_SIZE))),
            "sort": self.sort,
        }
        if self.keyword and self.keyword.strip():
            params["keyword"] = self.keyword.strip()
        if self.classification_name:
            params["classificationName"] = self.classification_name

        has_point = self.latitude is not None and self.longitude is not None
        if has_point:
            params["latlong"] = f"{self.latitude},{self.longitude}"
        elif self.postal_code:
            params["postalCode"] = self.postal_code
        elif self.city:
            params["city"] = self.city
        if self.radius and self.radius > 0 and (has_point or self.postal_code or self.city):
            params["radius"] = str(int(max(self.radius, 1)))
            params["unit"] = self.unit

        if self.start_date:
            params["startDateTime"] = f"{self.start_date.isoformat()}T00:00:00Z"
        if self.end_date:
            params["endDateTime"] = f"{self.end_date.isoformat()}T23:59:59Z"
        return params


def search_catalog(
    event_filter: EventFilter,
    api_key: Optional[str] = None,
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
) -> list[dict]:
    """
    Run one filtered search against the Discovery API and return the raw
    ``_embedded.events`` records.

    429 responses are retried with exponential backoff up to ``max_retries``
    times, then surface as ``RateLimited``. Anything else that goes wrong is a
    ``FetchFailed`` carrying the underlying message.
    """
    api_key = api_key or os.getenv("TICKETMASTER_API_KEY", "")
    if not api_key:
        print("[ticketmaster] No API key configured")
        raise FetchFailed(None, "Ticketmaster API key not configured")

    retries = max(0, settings.CATALOG_MAX_RETRIES if max_retries is None else max_retries)
    timeout = settings.CATALOG_TIMEOUT_SEC if timeout is None else timeout
    params = event_filter.to_params(api_key)

    for attempt in range(retries + 1):
        try:
            resp = requests.get(settings.TICKETMASTER_BASE_URL, params=params, timeout=timeout)
        except requests.RequestException as e:
            print(f"[ticketmaster] Request error: {e}")
            raise FetchFailed(None, str(e)) from e

        if resp.status_code == 429:
            if attempt < retries:
                wait = settings.CATALOG_BACKOFF_BASE_SEC * (2 ** attempt)
                print(f"[ticketmaster] Rate limited, retrying in {wait:.1f}s")
                time.sleep(wait)
                continue
            print("[ticketmaster] Rate limited, giving up")
            raise RateLimited()

        if resp.status_code != 200:
            print(f"[ticketmaster] API returned {resp.status_code}")
            raise FetchFailed(resp.status_code, f"Ticketmaster returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            print(f"[ticketmaster] Invalid JSON: {e}")
            raise FetchFailed(resp.status_code, f"Invalid JSON from Ticketmaster: {e}") from e

        raw_events = (data or {}).get("_embedded", {}).get("events", [])
        print(f"[ticketmaster] Fetched {len(raw_events)} events")
        return raw_events

    raise RateLimited()
