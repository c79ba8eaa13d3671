"""
Tests for selection.py

Covers single-pool rotation over the seen set and the recommended / popular
cross-backfill with a fallback pool.
"""

import unittest
from unittest.mock import MagicMock

from service.festival_feed.models import Event, SeenSet
from service.festival_feed.normalizer import DEDUP_BY_ID
from service.festival_feed.selection import (
    POLICY_RECOMMENDED_POPULAR,
    POLICY_ROTATION,
    POPULAR,
    RECOMMENDED,
    select,
    select_recommended_and_popular,
    select_top_n,
)


def _pool(prefix, count, start_rank=100.0):
    return [Event(id=f"{prefix}{i}", name=f"{prefix} show {i}", rank=start_rank - i) for i in range(count)]


def _ids(events):
    return [e.id for e in events]


class TestSelectTopN(unittest.TestCase):

    def test_takes_highest_ranked_first(self):
        pool = [Event(id="low", name="low", rank=1), Event(id="high", name="high", rank=9)]
        result = select_top_n(pool, SeenSet(), 1)
        self.assertEqual(_ids(result.events), ["high"])

    def test_refreshes_do_not_repeat_until_exhausted(self):
        seen = SeenSet()
        pool = _pool("e", 6)

        first = select_top_n(pool, seen, 3)
        second = select_top_n(pool, seen, 3)

        self.assertEqual(_ids(first.events), ["e0", "e1", "e2"])
        self.assertEqual(_ids(second.events), ["e3", "e4", "e5"])
        self.assertFalse(second.rotated)
        self.assertEqual(len(seen), 6)

    def test_all_seen_rotates_instead_of_failing(self):
        pool = _pool("e", 5)
        seen = SeenSet(_ids(pool))

        result = select_top_n(pool, seen, 3)

        self.assertEqual(len(result.events), 3)
        self.assertTrue(result.rotated)
        self.assertFalse(result.exhausted)
        self.assertEqual(seen.snapshot(), frozenset({"e0", "e1", "e2"}))

    def test_too_few_unseen_rotates_to_full_pool(self):
        pool = _pool("e", 5)
        seen = SeenSet(["e0", "e1", "e2"])

        result = select_top_n(pool, seen, 3)

        self.assertEqual(_ids(result.events), ["e0", "e1", "e2"])
        self.assertTrue(result.rotated)

    def test_small_pool_returns_what_exists(self):
        seen = SeenSet()
        result = select_top_n(_pool("e", 2), seen, 5)

        self.assertEqual(len(result.events), 2)
        self.assertTrue(result.exhausted)
        self.assertFalse(result.rotated)

    def test_duplicate_ids_in_pool_are_collapsed(self):
        pool = [Event(id="a", name="A", rank=5), Event(id="a", name="A again", rank=9), Event(id="b", name="B", rank=1)]
        result = select_top_n(pool, SeenSet(), 3)
        self.assertEqual(_ids(result.events), ["a", "b"])
        self.assertEqual(result.events[0].name, "A")

    def test_negative_n_rejected(self):
        with self.assertRaises(ValueError):
            select_top_n(_pool("e", 2), SeenSet(), -1)


class TestRecommendedAndPopular(unittest.TestCase):

    def test_backfills_recommended_from_popular(self):
        recommended = _pool("r", 2)
        popular = _pool("p", 15)

        result = select_recommended_and_popular(recommended, popular, 6, 9)

        rec = result.segments[RECOMMENDED]
        pop = result.segments[POPULAR]
        self.assertEqual(_ids(rec), ["r0", "r1", "p0", "p1", "p2", "p3"])
        self.assertEqual(_ids(pop), [f"p{i}" for i in range(4, 13)])
        self.assertFalse(result.exhausted)

    def test_popular_shrinks_by_exactly_the_backfilled_count(self):
        recommended = _pool("r", 4)
        popular = _pool("p", 10)

        result = select_recommended_and_popular(recommended, popular, 6, 9)

        self.assertEqual(len(result.segments[RECOMMENDED]), 6)
        self.assertEqual(len(result.segments[POPULAR]), 10 - 2)
        self.assertTrue(result.exhausted)

    def test_no_duplicates_across_segments(self):
        recommended = _pool("x", 3)
        popular = _pool("x", 12)
        fallback = MagicMock(return_value=_pool("x", 20))

        result = select_recommended_and_popular(recommended, popular, 6, 9, fallback=fallback)

        ids = result.all_ids
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(len(result.segments[RECOMMENDED]), 6)
        self.assertEqual(len(result.segments[POPULAR]), 9)

    def test_same_name_under_new_id_is_not_shown_twice(self):
        recommended = [Event(id="r1", name="Techno Night")]
        popular = [Event(id="reissued", name="techno night")] + _pool("p", 5)

        result = select_recommended_and_popular(recommended, popular, 1, 3)

        self.assertNotIn("reissued", result.all_ids)
        self.assertEqual(_ids(result.segments[POPULAR]), ["p0", "p1", "p2"])

    def test_id_mode_allows_same_name(self):
        recommended = [Event(id="r1", name="Techno Night")]
        popular = [Event(id="p1", name="techno night")]

        result = select_recommended_and_popular(recommended, popular, 1, 1, mode=DEDUP_BY_ID)

        self.assertEqual(result.all_ids, ["r1", "p1"])

    def test_fallback_only_called_when_short(self):
        fallback = MagicMock(return_value=[])
        select_recommended_and_popular(_pool("r", 6), _pool("p", 9), 6, 9, fallback=fallback)
        fallback.assert_not_called()

    def test_fallback_fills_remaining_popular_slots(self):
        recommended = _pool("r", 6)
        popular = _pool("p", 4)
        fallback = MagicMock(return_value=_pool("p", 2) + _pool("f", 10))

        result = select_recommended_and_popular(recommended, popular, 6, 9, fallback=fallback)

        fallback.assert_called_once()
        self.assertEqual(_ids(result.segments[POPULAR]), ["p0", "p1", "p2", "p3", "f0", "f1", "f2", "f3", "f4"])

    def test_everything_exhausted_returns_fewer(self):
        fallback = MagicMock(return_value=[])
        result = select_recommended_and_popular(_pool("r", 1), _pool("p", 2), 6, 9, fallback=fallback)

        self.assertEqual(len(result.all_ids), 3)
        self.assertTrue(result.exhausted)


class TestSelectDispatch(unittest.TestCase):

    def test_rotation_policy(self):
        seen = SeenSet()
        result = select({"events": _pool("e", 4)}, seen, {"events": 2}, POLICY_ROTATION)
        self.assertEqual(_ids(result.segments["events"]), ["e0", "e1"])

    def test_rotation_needs_single_pool(self):
        with self.assertRaises(ValueError):
            select({"a": [], "b": []}, SeenSet(), {"a": 1, "b": 1}, POLICY_ROTATION)

    def test_recommended_popular_policy_records_shown_ids(self):
        seen = SeenSet()
        result = select(
            {RECOMMENDED: _pool("r", 2), POPULAR: _pool("p", 5)},
            seen,
            {RECOMMENDED: 2, POPULAR: 3},
            POLICY_RECOMMENDED_POPULAR,
        )
        self.assertEqual(seen.snapshot(), frozenset(result.all_ids))

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            select({}, SeenSet(), {}, "random")


if __name__ == "__main__":
    unittest.main()
