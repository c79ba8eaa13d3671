"""
Tests for application.py

Exercises the HTTP surface with the pipeline and Firebase patched out:
error-to-status mapping, empty results, and the interaction endpoint.
"""

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

import application
from service.festival_feed import pipeline
from service.festival_feed.errors import EmptyResult, FetchFailed, RateLimited, SupersededRequest
from service.festival_feed.models import PURCHASE_SCORE, Event, SelectionResult


class ApplicationTestCase(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(application.app)

    def tearDown(self):
        pipeline.clear_sessions()


class TestExploreEndpoint(ApplicationTestCase):

    def test_health(self):
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")

    @patch("application.pipeline.build_explore_page")
    def test_sections_are_returned(self, mock_build):
        mock_build.return_value = SelectionResult(segments={
            "recommended": [Event(id="e1", name="Afterlife", rank=5.123)],
            "popular": [Event(id="e2", name="Dreamstate")],
        })

        resp = self.client.get("/explore")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["recommended"][0]["id"], "e1")
        self.assertEqual(body["recommended"][0]["rank"], 5.12)
        self.assertEqual(body["popular"][0]["priceMin"], "TBA")
        profile = mock_build.call_args[0][0]
        self.assertIsNone(profile.location)

    @patch("application.pipeline.build_explore_page")
    def test_coordinates_reach_the_profile(self, mock_build):
        mock_build.return_value = SelectionResult(segments={"recommended": [], "popular": []})

        self.client.get("/explore", params={"latitude": 40.7, "longitude": -74.0})

        profile = mock_build.call_args[0][0]
        self.assertEqual(profile.location, (40.7, -74.0))

    @patch("application.pipeline.build_explore_page")
    def test_rate_limit_is_429(self, mock_build):
        mock_build.side_effect = RateLimited()

        resp = self.client.get("/explore")

        self.assertEqual(resp.status_code, 429)
        self.assertIn("Rate limit", resp.json()["detail"])

    @patch("application.pipeline.build_explore_page")
    def test_fetch_failure_is_502(self, mock_build):
        mock_build.side_effect = FetchFailed(503, "Service Unavailable")

        resp = self.client.get("/explore")

        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["detail"], "Failed to fetch events.")

    @patch("application.pipeline.build_explore_page")
    def test_empty_result_is_not_an_error(self, mock_build):
        mock_build.side_effect = EmptyResult("no events matched the explore queries")

        resp = self.client.get("/explore")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["empty"])
        self.assertEqual(body["recommended"], [])
        self.assertEqual(body["popular"], [])

    @patch("application.pipeline.build_explore_page")
    def test_superseded_is_409(self, mock_build):
        mock_build.side_effect = SupersededRequest("request 1 superseded by 2")
        self.assertEqual(self.client.get("/explore").status_code, 409)

    def test_bad_authorization_header_is_401(self):
        resp = self.client.get("/explore", headers={"Authorization": "Token abc"})
        self.assertEqual(resp.status_code, 401)


class TestNearMeAndFeed(ApplicationTestCase):

    def test_near_me_without_location(self):
        resp = self.client.get("/explore/near_me")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"events": [], "locationAvailable": False})

    @patch("application.pipeline.build_near_me_page")
    def test_near_me_passes_radius(self, mock_build):
        mock_build.return_value = SelectionResult(segments={"events": [Event(id="n1", name="Local Rave")]})

        resp = self.client.get("/explore/near_me", params={"latitude": 40.7, "longitude": -74.0, "radius": 10})

        self.assertTrue(resp.json()["locationAvailable"])
        self.assertEqual(mock_build.call_args.kwargs["radius_miles"], 10)

    def test_feed_rejects_zero_size(self):
        self.assertEqual(self.client.get("/explore/feed", params={"size": 0}).status_code, 400)

    @patch("application.pipeline.build_feed")
    def test_feed_page_size(self, mock_build):
        mock_build.return_value = SelectionResult(segments={"events": []}, rotated=True)

        resp = self.client.get("/explore/feed", params={"size": 4})

        self.assertTrue(resp.json()["rotated"])
        self.assertEqual(mock_build.call_args.kwargs["page_size"], 4)

    def test_reset_session(self):
        pipeline.get_session(None).seen.add_all(["e1"])

        resp = self.client.delete("/explore/session")

        self.assertEqual(resp.json(), {"reset": True})
        self.assertEqual(len(pipeline.get_session(None).seen), 0)


class TestSearchEndpoint(ApplicationTestCase):

    def test_invalid_sort(self):
        self.assertEqual(self.client.get("/search", params={"sort": "name,asc"}).status_code, 400)

    def test_end_before_start(self):
        resp = self.client.get("/search", params={"start_date": "2026-11-05", "end_date": "2026-11-01"})
        self.assertEqual(resp.status_code, 400)

    @patch("application.pipeline.search_events")
    def test_zip_code_location(self, mock_search):
        mock_search.side_effect = EmptyResult("no events matched this search")

        resp = self.client.get("/search", params={"keyword": "techno", "location": "10001"})

        self.assertTrue(resp.json()["empty"])
        event_filter = mock_search.call_args[0][0]
        self.assertEqual(event_filter.postal_code, "10001")
        self.assertIsNone(event_filter.city)
        self.assertEqual(event_filter.keyword, "techno")

    @patch("application.pipeline.search_events")
    def test_coordinates_win_over_location_text(self, mock_search):
        mock_search.return_value = [Event(id="s1", name="Warehouse Party")]

        resp = self.client.get(
            "/search",
            params={"location": "Austin", "latitude": 30.27, "longitude": -97.74, "sort": "date,asc"},
        )

        self.assertEqual(resp.json()["events"][0]["id"], "s1")
        event_filter = mock_search.call_args[0][0]
        self.assertEqual(event_filter.latitude, 30.27)
        self.assertIsNone(event_filter.city)
        self.assertEqual(event_filter.sort, "date,asc")


class TestInteractionEndpoint(ApplicationTestCase):

    def test_requires_auth(self):
        resp = self.client.post("/interactions", json={"eventId": "e1", "score": 3})
        self.assertEqual(resp.status_code, 401)

    @patch("application.log_interaction")
    @patch("application._verify_and_get_user")
    def test_logs_in_background(self, mock_verify, mock_log):
        mock_verify.return_value = {"uid": "u1"}

        resp = self.client.post(
            "/interactions",
            json={"eventId": "e1", "score": 3},
            headers={"Authorization": "Bearer token"},
        )

        self.assertEqual(resp.status_code, 202)
        mock_log.assert_called_once_with("u1", "e1", 3.0)

    @patch("application.log_interaction")
    @patch("application._verify_and_get_user")
    def test_named_action_maps_to_score(self, mock_verify, mock_log):
        mock_verify.return_value = {"uid": "u1"}

        resp = self.client.post("/interactions", json={"eventId": "e1", "action": "purchase"})

        self.assertEqual(resp.status_code, 202)
        mock_log.assert_called_once_with("u1", "e1", PURCHASE_SCORE)

    @patch("application.log_interaction")
    @patch("application._verify_and_get_user")
    def test_needs_score_or_action(self, mock_verify, mock_log):
        mock_verify.return_value = {"uid": "u1"}

        resp = self.client.post("/interactions", json={"eventId": "e1"})

        self.assertEqual(resp.status_code, 400)
        mock_log.assert_not_called()

    @patch("application._verify_and_get_user")
    def test_rejects_non_positive_score(self, mock_verify):
        mock_verify.return_value = {"uid": "u1"}

        resp = self.client.post("/interactions", json={"eventId": "e1", "score": 0})

        self.assertEqual(resp.status_code, 422)


if __name__ == "__main__":
    unittest.main()
