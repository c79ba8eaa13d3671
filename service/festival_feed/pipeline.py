"""
Festival feed orchestrator.

Fires the catalog queries for one screen in parallel, waits for all of them,
then normalizes, ranks and selects the events to show. Each user gets an
``ExploreSession`` holding the ids already shown and a generation counter so
a slow, superseded request can never overwrite a newer one.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator, Optional

from . import settings
from .errors import CatalogError, EmptyResult, LocationUnavailable, RateLimited, SupersededRequest
from .models import Event, SeenSet, SelectionResult, UserPreferenceProfile
from .normalizer import DEDUP_BY_ID, DEDUP_BY_ID_AND_NAME, dedup, normalize
from .ranking import rank_events, score
from .selection import (
    POLICY_ROTATION,
    POPULAR,
    RECOMMENDED,
    select,
    select_recommended_and_popular,
)
from .settings import RankingWeights
from .ticketmaster_client import SORT_DATE, SORT_RELEVANCE, EventFilter, search_catalog

Fetcher = Callable[[EventFilter], list[dict]]

FEED_SEGMENT = "events"
ANONYMOUS = "anonymous"
MAX_PARALLEL_FETCHES = 8


class ExploreSession:
    def __init__(self, key: str = ANONYMOUS):
        self.key = key
        self.seen = SeenSet()
        self._selection_lock = threading.Lock()
        self._generation_lock = threading.Lock()
        self._generation = 0
        self.last_used = time.time()

    @property
    def generation(self) -> int:
        with self._generation_lock:
            return self._generation

    def begin(self) -> int:
        """Start a new request; anything begun earlier becomes stale."""
        with self._generation_lock:
            self._generation += 1
            return self._generation

    @contextmanager
    def commit(self, generation: int) -> Iterator[SeenSet]:
        """Serialize selections and reject responses from superseded requests."""
        with self._selection_lock:
            if generation != self.generation:
                print(f"[explore] Dropping stale response for {self.key} (gen {generation})")
                raise SupersededRequest(f"request {generation} superseded by {self.generation}")
            yield self.seen

    def reset(self) -> None:
        self.begin()
        with self._selection_lock:
            self.seen.clear()


_sessions: OrderedDict[str, ExploreSession] = OrderedDict()
_sessions_lock = threading.Lock()


def _evict_sessions(now: float) -> None:
    """Drop idle sessions, then the least recently used beyond ``MAX_SESSIONS``. Caller holds the lock."""
    while _sessions:
        key, oldest = next(iter(_sessions.items()))
        idle = now - oldest.last_used > settings.SESSION_IDLE_TTL_SEC
        if not idle and len(_sessions) <= max(1, settings.MAX_SESSIONS):
            break
        del _sessions[key]
        print(f"[explore] Evicted session {key} ({'idle' if idle else 'over capacity'})")


def get_session(key: Optional[str]) -> ExploreSession:
    key = key or ANONYMOUS
    now = time.time()
    with _sessions_lock:
        session = _sessions.get(key)
        if session is None:
            session = _sessions[key] = ExploreSession(key)
        session.last_used = now
        _sessions.move_to_end(key)
        _evict_sessions(now)
        return session


def session_count() -> int:
    with _sessions_lock:
        return len(_sessions)


def drop_session(key: Optional[str]) -> bool:
    with _sessions_lock:
        session = _sessions.pop(key or ANONYMOUS, None)
    if session is None:
        return False
    session.reset()
    return True


def clear_sessions() -> int:
    with _sessions_lock:
        count = len(_sessions)
        _sessions.clear()
    return count


def fetch_pools(
    filters: dict[str, EventFilter],
    fetcher: Optional[Fetcher] = None,
    mode: str = DEDUP_BY_ID,
) -> dict[str, list[Event]]:
    """
    Run every query concurrently and return normalized pools in ``filters``
    order. Nothing is returned until all queries have finished; if any failed
    the first error (a rate limit if there was one) is raised.
    """
    fetcher = fetcher or search_catalog
    raw: dict[str, list[dict]] = {}
    errors: list[CatalogError] = []

    with ThreadPoolExecutor(max_workers=max(1, min(MAX_PARALLEL_FETCHES, len(filters)))) as executor:
        futures = {executor.submit(fetcher, f): name for name, f in filters.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                raw[name] = future.result()
            except CatalogError as e:
                print(f"[explore] Pool '{name}' failed: {e}")
                errors.append(e)

    if errors:
        rate_limited = [e for e in errors if isinstance(e, RateLimited)]
        raise (rate_limited or errors)[0]

    return {name: normalize(raw.get(name, []), mode) for name in filters}


def build_explore_page(
    profile: UserPreferenceProfile,
    session: ExploreSession,
    fetcher: Optional[Fetcher] = None,
    now: Optional[datetime] = None,
    weights: Optional[RankingWeights] = None,
    recommended_target: Optional[int] = None,
    popular_target: Optional[int] = None,
) -> SelectionResult:
    """Recommended (first preference tag) + popular sections, cross-backfilled."""
    fetcher = fetcher or search_catalog
    now = now or datetime.now()
    generation = session.begin()
    targets = {
        RECOMMENDED: settings.EXPLORE_RECOMMENDED_TARGET if recommended_target is None else recommended_target,
        POPULAR: settings.EXPLORE_POPULAR_TARGET if popular_target is None else popular_target,
    }

    filters = {
        RECOMMENDED: EventFilter(
            keyword=profile.primary_tag,
            classification_name=settings.DEFAULT_CLASSIFICATION,
            size=settings.RECOMMENDED_QUERY_SIZE,
        ),
        POPULAR: EventFilter(
            classification_name=settings.DEFAULT_CLASSIFICATION,
            size=settings.POPULAR_QUERY_SIZE,
        ),
    }
    pools = fetch_pools(filters, fetcher, mode=DEDUP_BY_ID_AND_NAME)
    ranked = {name: rank_events(pool, profile, now, weights) for name, pool in pools.items()}

    def fallback() -> list[Event]:
        fb_filter = EventFilter(
            classification_name=settings.DEFAULT_CLASSIFICATION,
            size=targets[POPULAR],
        )
        return rank_events(normalize(fetcher(fb_filter), DEDUP_BY_ID_AND_NAME), profile, now, weights)

    # The fallback may hit the catalog, so select before taking the session lock
    # and only record the shown ids if this request is still current.
    result = select_recommended_and_popular(
        ranked[RECOMMENDED],
        ranked[POPULAR],
        recommended_target=targets[RECOMMENDED],
        popular_target=targets[POPULAR],
        fallback=fallback,
    )
    with session.commit(generation) as seen:
        seen.add_all(result.all_ids)

    print(f"[explore] {session.key}: {len(result.segments[RECOMMENDED])} recommended, "
          f"{len(result.segments[POPULAR])} popular")
    if not result.events:
        raise EmptyResult("no events matched the explore queries")
    return result


def build_near_me_page(
    profile: UserPreferenceProfile,
    session: ExploreSession,
    radius_miles: Optional[float] = None,
    fetcher: Optional[Fetcher] = None,
    now: Optional[datetime] = None,
    weights: Optional[RankingWeights] = None,
) -> SelectionResult:
    if profile.location is None:
        raise LocationUnavailable("near-me mode needs a location")

    generation = session.begin()
    lat, lon = profile.location
    near_filter = EventFilter(
        classification_name=settings.DEFAULT_CLASSIFICATION,
        latitude=lat,
        longitude=lon,
        radius=settings.NEAR_ME_RADIUS_MILES if radius_miles is None else radius_miles,
        size=settings.NEAR_ME_PAGE_SIZE,
    )
    pools = fetch_pools({FEED_SEGMENT: near_filter}, fetcher, mode=DEDUP_BY_ID_AND_NAME)
    ranked = rank_events(pools[FEED_SEGMENT], profile, now, weights)[: settings.NEAR_ME_PAGE_SIZE]

    with session.commit(generation) as seen:
        seen.add_all(ev.id for ev in ranked)

    if not ranked:
        raise EmptyResult("no events near this location")
    return SelectionResult(segments={FEED_SEGMENT: ranked})


def build_feed(
    profile: UserPreferenceProfile,
    session: ExploreSession,
    page_size: Optional[int] = None,
    fetcher: Optional[Fetcher] = None,
    now: Optional[datetime] = None,
    weights: Optional[RankingWeights] = None,
) -> SelectionResult:
    """
    Personalized single-pool feed: one query per preference tag plus a local
    query when a location is known, merged, ranked, then the top page of
    events not shown yet in this session.
    """
    page_size = settings.EXPLORE_FEED_PAGE_SIZE if page_size is None else page_size
    generation = session.begin()

    filters: dict[str, EventFilter] = {}
    for tag in profile.sub_genres[: settings.MAX_TAG_QUERIES]:
        filters[f"tag:{tag}"] = EventFilter(
            keyword=tag,
            classification_name=settings.DEFAULT_CLASSIFICATION,
            size=settings.TAG_QUERY_SIZE,
        )
    if profile.location is not None:
        lat, lon = profile.location
        filters["local"] = EventFilter(
            classification_name=settings.DEFAULT_CLASSIFICATION,
            latitude=lat,
            longitude=lon,
            radius=settings.NEAR_ME_RADIUS_MILES,
            size=settings.LOCAL_QUERY_SIZE,
            sort=SORT_DATE,
        )

    pools = fetch_pools(filters, fetcher)
    merged = dedup((ev for pool in pools.values() for ev in pool), DEDUP_BY_ID_AND_NAME)
    ranked = rank_events(merged, profile, now, weights)

    with session.commit(generation) as seen:
        result = select({FEED_SEGMENT: ranked}, seen, {FEED_SEGMENT: page_size}, POLICY_ROTATION)

    if not result.events:
        raise EmptyResult("no events for these preferences")
    return result


def search_events(
    event_filter: EventFilter,
    profile: UserPreferenceProfile,
    session: Optional[ExploreSession] = None,
    fetcher: Optional[Fetcher] = None,
    now: Optional[datetime] = None,
    weights: Optional[RankingWeights] = None,
) -> list[Event]:
    """
    Keyword / location / date search. Relevance-sorted searches are re-ranked
    for the user; date-sorted searches keep catalog order with scores attached.
    """
    fetcher = fetcher or search_catalog
    now = now or datetime.now()
    weights = weights or RankingWeights()
    generation = session.begin() if session is not None else None

    events = normalize(fetcher(event_filter), DEDUP_BY_ID)
    if event_filter.sort == SORT_RELEVANCE:
        events = rank_events(events, profile, now, weights)
    else:
        events = [replace(ev, rank=score(ev, profile, now, weights)) for ev in events]

    if session is not None:
        with session.commit(generation):
            pass

    if not events:
        raise EmptyResult("no events matched this search")
    return events
