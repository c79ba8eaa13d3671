import unittest

from service.festival_feed.errors import LocationUnavailable
from service.festival_feed.geo import optional_location, resolve_location


class TestResolveLocation(unittest.TestCase):

    def test_valid_coordinates(self):
        self.assertEqual(resolve_location(40.7, -74.0), (40.7, -74.0))
        self.assertEqual(resolve_location("40.7", "-74.0"), (40.7, -74.0))

    def test_missing_or_invalid(self):
        for lat, lon in [(None, -74.0), (40.7, None), (91.0, 0.0), (0.0, 181.0), (float("nan"), 0.0), ("north", 1)]:
            with self.assertRaises(LocationUnavailable):
                resolve_location(lat, lon)

    def test_optional_location(self):
        self.assertIsNone(optional_location(None, None))
        self.assertIsNone(optional_location(float("inf"), 2.0))
        self.assertEqual(optional_location(1.0, 2.0), (1.0, 2.0))


if __name__ == "__main__":
    unittest.main()
