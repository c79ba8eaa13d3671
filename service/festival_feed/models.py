"""Shared data models for the festival feed (explore / search / near-me)."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional

# Fallback labels used when the catalog omits a field.
UNKNOWN_VENUE = "Unknown venue"
DEFAULT_GENRE = "Electronic"
PRICE_TBA = "TBA"

# Interaction strengths written by the Interaction Logger.
VIEW_SCORE = 1
OPEN_SCORE = 3
PURCHASE_SCORE = 5
INTERACTION_SCORES = {"view": VIEW_SCORE, "open": OPEN_SCORE, "purchase": PURCHASE_SCORE}


@dataclass
class Event:
    id: str
    name: str
    image_url: str = ""
    start_date: Optional[str] = None  # ISO local date, e.g. "2026-11-02"
    venue_name: str = UNKNOWN_VENUE
    city: str = ""
    state_code: str = ""
    artist_name: str = ""
    genre: str = DEFAULT_GENRE
    sub_genre: str = ""
    segment: str = ""
    price_min: Optional[float] = None
    price_currency: str = "USD"
    external_url: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    popularity: Optional[float] = None
    rank: float = 0.0

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def classification_strings(self) -> list[str]:
        return [s for s in (self.genre, self.sub_genre, self.segment) if s]

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def start_as_date(self) -> Optional[date]:
        if not self.start_date:
            return None
        try:
            return date.fromisoformat(self.start_date[:10])
        except ValueError:
            return None

    def to_dict(self) -> dict:
        """Client wire shape (camelCase, "TBA" price sentinel)."""
        return {
            "id": self.id,
            "name": self.name,
            "imageUrl": self.image_url,
            "startDate": self.start_date,
            "venueName": self.venue_name,
            "city": self.city,
            "stateCode": self.state_code,
            "artistName": self.artist_name,
            "genre": self.genre,
            "priceMin": self.price_min if self.price_min is not None else PRICE_TBA,
            "priceCurrency": self.price_currency,
            "externalUrl": self.external_url,
            "rank": round(self.rank, 2),
        }


def normalize_name(name: str) -> str:
    return " ".join((name or "").split()).lower()


def utc_timestamp(when: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with a "Z" suffix; naive datetimes are taken as UTC."""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class UserPreferenceProfile:
    sub_genres: tuple[str, ...]
    location: Optional[tuple[float, float]] = None
    uid: Optional[str] = None

    @property
    def primary_tag(self) -> str:
        return self.sub_genres[0]

    def with_location(self, location: Optional[tuple[float, float]]) -> "UserPreferenceProfile":
        return UserPreferenceProfile(sub_genres=self.sub_genres, location=location, uid=self.uid)


def build_profile(
    tags: Iterable[str],
    location: Optional[tuple[float, float]] = None,
    uid: Optional[str] = None,
    default_tag: str = "EDM",
) -> UserPreferenceProfile:
    """Strip, de-duplicate (first seen wins) and fall back to ``default_tag``."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag.lower() not in seen:
            seen.add(tag.lower())
            cleaned.append(tag)
    if not cleaned:
        cleaned = [default_tag]
    return UserPreferenceProfile(sub_genres=tuple(cleaned), location=location, uid=uid)


class SeenSet:
    """Event ids already shown during the current browsing session."""

    def __init__(self, ids: Optional[Iterable[str]] = None):
        self._ids: set[str] = set(ids or ())
        self._lock = threading.Lock()

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return event_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def add_all(self, ids: Iterable[str]) -> None:
        with self._lock:
            self._ids.update(ids)

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._ids)


@dataclass
class SelectionResult:
    """Named segments of one response, e.g. {"recommended": [...], "popular": [...]}."""

    segments: dict[str, list[Event]] = field(default_factory=dict)
    rotated: bool = False
    exhausted: bool = False

    @property
    def events(self) -> list[Event]:
        out: list[Event] = []
        for items in self.segments.values():
            out.extend(items)
        return out

    @property
    def all_ids(self) -> list[str]:
        return [e.id for e in self.events]

    def to_dict(self) -> dict:
        payload: dict = {name: [e.to_dict() for e in items] for name, items in self.segments.items()}
        payload["rotated"] = self.rotated
        payload["exhausted"] = self.exhausted
        return payload
