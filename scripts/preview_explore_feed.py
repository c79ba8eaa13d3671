#!/usr/bin/env python3
"""
Print what the explore screens would show for a user, straight from the live
Ticketmaster catalog.

Usage:
  # Recommended + popular sections for an anonymous user
  python scripts/preview_explore_feed.py

  # Personalized rotation feed for a stored user, ranked around a location
  python scripts/preview_explore_feed.py --mode feed --uid abc123 --lat 40.71 --lon -74.00

  # Two refreshes in a row to see the seen-event rotation at work
  python scripts/preview_explore_feed.py --mode feed --refreshes 2
"""
from __future__ import annotations

import argparse
import os
import sys

# Ensure backend root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()


def _print_events(title: str, events) -> None:
    print(f"\n{title} ({len(events)})")
    for ev in events:
        when = ev.start_date or "Date N/A"
        print(f"  {ev.rank:6.2f}  {when}  {ev.name} - {ev.venue_name} [{ev.genre}]")


def main() -> None:
    parser = argparse.ArgumentParser(description="Preview explore / near-me / feed results.")
    parser.add_argument("--mode", choices=["explore", "near_me", "feed"], default="explore")
    parser.add_argument("--uid", default=None, help="Firebase uid whose taste profile to load.")
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--tags", nargs="*", default=None, help="Override preference tags.")
    parser.add_argument("--refreshes", type=int, default=1, help="Feed mode: pages to pull.")
    args = parser.parse_args()

    from service.festival_feed import firebase_store, pipeline
    from service.festival_feed.errors import EmptyResult, FestivalFeedError
    from service.festival_feed.geo import optional_location
    from service.festival_feed.models import build_profile

    if args.tags:
        profile = build_profile(args.tags, uid=args.uid)
    else:
        profile = firebase_store.load_preference_profile(args.uid)
    location = optional_location(args.lat, args.lon)
    if location is not None:
        profile = profile.with_location(location)
    print(f"Profile tags: {', '.join(profile.sub_genres)}; location: {profile.location or 'none'}")

    session = pipeline.get_session(args.uid)
    try:
        if args.mode == "explore":
            result = pipeline.build_explore_page(profile, session)
            for name, events in result.segments.items():
                _print_events(name.capitalize(), events)
        elif args.mode == "near_me":
            result = pipeline.build_near_me_page(profile, session)
            _print_events("Events near you", result.events)
        else:
            for page in range(1, max(1, args.refreshes) + 1):
                result = pipeline.build_feed(profile, session)
                suffix = " - seen set rotated" if result.rotated else ""
                _print_events(f"Feed page {page}{suffix}", result.events)
    except EmptyResult as e:
        print(f"\nNo events: {e}")
    except FestivalFeedError as e:
        print(f"\nFailed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
