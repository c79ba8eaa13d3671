"""Assemble fixed-size result pages from ranked pools."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from .models import Event, SeenSet, SelectionResult, normalize_name
from .normalizer import DEDUP_BY_ID, DEDUP_BY_ID_AND_NAME, dedup

POLICY_ROTATION = "rotation"
POLICY_RECOMMENDED_POPULAR = "recommended_popular"

RECOMMENDED = "recommended"
POPULAR = "popular"


class _Taken:
    """Ids (and optionally names) already placed somewhere in this response."""

    def __init__(self, mode: str):
        self.mode = mode
        self.ids: set[str] = set()
        self.names: set[str] = set()

    def __contains__(self, ev: Event) -> bool:
        if ev.id in self.ids:
            return True
        return self.mode == DEDUP_BY_ID_AND_NAME and normalize_name(ev.name) in self.names

    def add(self, ev: Event) -> None:
        self.ids.add(ev.id)
        name = normalize_name(ev.name)
        if name:
            self.names.add(name)


def _fill(target: list[Event], limit: int, source: Iterable[Event], taken: _Taken) -> list[Event]:
    """Append unseen items from ``source`` until ``target`` holds ``limit``; return leftovers."""
    leftovers = []
    for ev in source:
        if len(target) >= limit:
            leftovers.append(ev)
        elif ev not in taken:
            target.append(ev)
            taken.add(ev)
    return leftovers


def select_top_n(
    pool: Iterable[Event],
    seen: SeenSet,
    n: int,
    segment: str = "events",
) -> SelectionResult:
    """
    Top ``n`` of a ranked pool, skipping ids in ``seen``.

    When fewer than ``n`` unseen events remain the seen set is cleared and the
    full pool is used again, so a refresh never comes back empty just because
    everything was already shown.
    """
    if n < 0:
        raise ValueError("n must be >= 0")

    ranked = sorted(dedup(pool, DEDUP_BY_ID), key=lambda ev: ev.rank, reverse=True)
    shown = seen.snapshot()
    candidates = [ev for ev in ranked if ev.id not in shown]
    rotated = False
    if len(candidates) < n:
        if shown:
            print(f"[explore] Only {len(candidates)} unseen events for {n} slots, rotating seen set")
            rotated = True
        seen.clear()
        candidates = ranked

    chosen = candidates[:n]
    seen.add_all(ev.id for ev in chosen)
    return SelectionResult(
        segments={segment: chosen},
        rotated=rotated,
        exhausted=len(chosen) < n,
    )


def select_recommended_and_popular(
    recommended: Iterable[Event],
    popular: Iterable[Event],
    recommended_target: int = 6,
    popular_target: int = 9,
    fallback: Optional[Callable[[], list[Event]]] = None,
    mode: str = DEDUP_BY_ID_AND_NAME,
) -> SelectionResult:
    """
    Recommended + popular sections with cross-backfill.

      1. Up to ``recommended_target`` unique recommended events
      2. Recommended shortfall is filled from the front of the popular pool,
         and those events are removed from it
      3. Next ``popular_target`` events from what is left of the popular pool
      4. Still short: call ``fallback`` once and fill the remaining slots with
         events not already selected anywhere in this response

    Returns fewer than requested only when every pool, fallback included, ran dry.
    """
    taken = _Taken(mode)
    rec_list: list[Event] = []
    _fill(rec_list, recommended_target, recommended, taken)

    popular_left = [ev for ev in popular if ev not in taken]
    if len(rec_list) < recommended_target:
        before = len(rec_list)
        popular_left = _fill(rec_list, recommended_target, popular_left, taken)
        print(f"[explore] Backfilled {len(rec_list) - before} recommended events from popular")

    pop_list: list[Event] = []
    _fill(pop_list, popular_target, popular_left, taken)

    if (len(rec_list) < recommended_target or len(pop_list) < popular_target) and fallback is not None:
        fb_events = fallback() or []
        print(f"[explore] Fallback query returned {len(fb_events)} events")
        _fill(rec_list, recommended_target, fb_events, taken)
        _fill(pop_list, popular_target, fb_events, taken)

    return SelectionResult(
        segments={RECOMMENDED: rec_list, POPULAR: pop_list},
        exhausted=len(rec_list) < recommended_target or len(pop_list) < popular_target,
    )


def select(
    pools: dict[str, list[Event]],
    seen: SeenSet,
    target_counts: dict[str, int],
    policy: str = POLICY_ROTATION,
    fallback: Optional[Callable[[], list[Event]]] = None,
) -> SelectionResult:
    if policy == POLICY_ROTATION:
        if len(pools) != 1:
            raise ValueError("rotation policy takes exactly one pool")
        (name, pool), = pools.items()
        return select_top_n(pool, seen, target_counts[name], segment=name)

    if policy == POLICY_RECOMMENDED_POPULAR:
        result = select_recommended_and_popular(
            pools.get(RECOMMENDED, []),
            pools.get(POPULAR, []),
            recommended_target=target_counts[RECOMMENDED],
            popular_target=target_counts[POPULAR],
            fallback=fallback,
        )
        seen.add_all(result.all_ids)
        return result

    raise ValueError(f"Unknown selection policy: {policy}")
