"""Environment-driven settings for the festival feed."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[settings] Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _int_env(name: str, default: int) -> int:
    return int(_float_env(name, default))


TICKETMASTER_BASE_URL = os.getenv(
    "TICKETMASTER_BASE_URL", "https://app.ticketmaster.com/discovery/v2/events.json"
)
CATALOG_TIMEOUT_SEC = _float_env("CATALOG_TIMEOUT_SEC", 15.0)
CATALOG_MAX_RETRIES = _int_env("CATALOG_MAX_RETRIES", 2)
CATALOG_BACKOFF_BASE_SEC = _float_env("CATALOG_BACKOFF_BASE_SEC", 1.0)

DEFAULT_CLASSIFICATION = os.getenv("DEFAULT_CLASSIFICATION", "Electronic")
DEFAULT_PREFERENCE_TAG = os.getenv("DEFAULT_PREFERENCE_TAG", "EDM")

EXPLORE_RECOMMENDED_TARGET = _int_env("EXPLORE_RECOMMENDED_TARGET", 6)
EXPLORE_POPULAR_TARGET = _int_env("EXPLORE_POPULAR_TARGET", 9)
EXPLORE_FEED_PAGE_SIZE = _int_env("EXPLORE_FEED_PAGE_SIZE", 12)
RECOMMENDED_QUERY_SIZE = 20
POPULAR_QUERY_SIZE = 35
TAG_QUERY_SIZE = 20
LOCAL_QUERY_SIZE = 50
NEAR_ME_RADIUS_MILES = _float_env("NEAR_ME_RADIUS_MILES", 25.0)
NEAR_ME_PAGE_SIZE = _int_env("NEAR_ME_PAGE_SIZE", 15)
MAX_TAG_QUERIES = _int_env("MAX_TAG_QUERIES", 5)

# In-process explore sessions (seen events per user)
MAX_SESSIONS = _int_env("MAX_SESSIONS", 10000)
SESSION_IDLE_TTL_SEC = _float_env("SESSION_IDLE_TTL_SEC", 1800.0)


@dataclass(frozen=True)
class RankingWeights:
    recency_window_days: int = field(default_factory=lambda: _int_env("RANKING_RECENCY_WINDOW_DAYS", 30))
    recency_bonus: float = field(default_factory=lambda: _float_env("RANKING_RECENCY_BONUS", 2.0))
    proximity_max_bonus: float = field(default_factory=lambda: _float_env("RANKING_PROXIMITY_MAX_BONUS", 10.0))
    # bonus = max_bonus - distance_km / km_per_point, floored at zero
    proximity_km_per_point: float = field(default_factory=lambda: _float_env("RANKING_PROXIMITY_KM_PER_POINT", 50.0))
    match_bonus: float = field(default_factory=lambda: _float_env("RANKING_MATCH_BONUS", 3.0))
    popularity_weight: float = field(default_factory=lambda: _float_env("RANKING_POPULARITY_WEIGHT", 0.1))
    popularity_cap: float = field(default_factory=lambda: _float_env("RANKING_POPULARITY_CAP", 1.0))

    @property
    def proximity_cutoff_km(self) -> float:
        return self.proximity_max_bonus * self.proximity_km_per_point
