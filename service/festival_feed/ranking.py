"""Score events for a user based on recency, proximity and preference tags."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .models import Event, UserPreferenceProfile
from .settings import RankingWeights


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    R = 6371.0
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    # rounding can push ``a`` just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def recency_bonus(event: Event, now: datetime, weights: RankingWeights) -> float:
    start = event.start_as_date()
    if start is None:
        return 0.0
    window_end = (now + timedelta(days=weights.recency_window_days)).date()
    if now.date() < start < window_end:
        return weights.recency_bonus
    return 0.0


def proximity_bonus(
    event: Event,
    location: Optional[tuple[float, float]],
    weights: RankingWeights,
) -> float:
    if location is None or not event.has_coordinates:
        return 0.0
    dist = haversine_km(location[0], location[1], event.latitude, event.longitude)
    return max(0.0, weights.proximity_max_bonus - dist / weights.proximity_km_per_point)


def matched_tags(event: Event, tags: Iterable[str]) -> list[str]:
    """Profile tags found (case-insensitive substring) in the event's classifications."""
    haystack = [s.lower() for s in event.classification_strings]
    out = []
    for tag in tags:
        needle = (tag or "").strip().lower()
        if needle and any(needle in s for s in haystack):
            out.append(tag)
    return out


def popularity_bonus(event: Event, weights: RankingWeights) -> float:
    if event.popularity is None:
        return 0.0
    return min(weights.popularity_cap, max(0.0, event.popularity * weights.popularity_weight))


def score(
    event: Event,
    profile: UserPreferenceProfile,
    now: datetime,
    weights: Optional[RankingWeights] = None,
) -> float:
    """
    Sum of independent, non-negative contributions:

      1. Recency: flat bonus when the start date is strictly inside (now, now + window)
      2. Proximity: max_bonus - km / km_per_point, floored at 0 (needs both coordinates)
      3. Preference match: match_bonus per profile tag found in genre/subgenre/segment
      4. Popularity: catalog popularity at reduced weight, capped
    """
    weights = weights or RankingWeights()
    total = recency_bonus(event, now, weights)
    total += proximity_bonus(event, profile.location, weights)
    total += len(matched_tags(event, profile.sub_genres)) * weights.match_bonus
    total += popularity_bonus(event, weights)
    return total


def rank_events(
    events: Iterable[Event],
    profile: UserPreferenceProfile,
    now: Optional[datetime] = None,
    weights: Optional[RankingWeights] = None,
) -> list[Event]:
    """
    Return copies of ``events`` with ``rank`` filled in, sorted by descending
    score. Ties keep their input order.
    """
    now = now or datetime.now()
    weights = weights or RankingWeights()
    scored = [replace(ev, rank=score(ev, profile, now, weights)) for ev in events]
    scored.sort(key=lambda ev: ev.rank, reverse=True)
    return scored
