"""Read user taste profiles and last-known locations from Firestore."""

from __future__ import annotations

import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

from . import settings
from .models import UserPreferenceProfile, build_profile, utc_timestamp

USERS_COLLECTION = "users"

_db = None


def get_db():
    global _db
    if _db is not None:
        return _db

    service_account_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH", "serviceAccount.json")
    project_id = os.getenv("FIREBASE_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT")

    if not firebase_admin._apps:  # type: ignore[attr-defined]
        options = {"projectId": project_id} if project_id else None
        if os.path.exists(service_account_path):
            cred = credentials.Certificate(service_account_path)
            firebase_admin.initialize_app(cred, options)
        else:
            firebase_admin.initialize_app(options=options)

    _db = firestore.client()
    return _db


def flatten_sub_genres(value) -> list[str]:
    """
    ``subGenres`` is stored either as a map of top-level genre -> list of
    sub-genres, or as a flat list. Both flatten to a list of strings.
    """
    if isinstance(value, dict):
        out: list[str] = []
        for item in value.values():
            out.extend(flatten_sub_genres(item))
        return out
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    if isinstance(value, str):
        return [value]
    return []


def _stored_location(data: dict) -> Optional[tuple[float, float]]:
    lat = data.get("last_latitude")
    lon = data.get("last_longitude")
    if lat is None or lon is None:
        return None
    try:
        return float(lat), float(lon)
    except (TypeError, ValueError):
        return None


def default_profile(location: Optional[tuple[float, float]] = None) -> UserPreferenceProfile:
    return build_profile([], location=location, default_tag=settings.DEFAULT_PREFERENCE_TAG)


def load_preference_profile(uid: Optional[str], db=None) -> UserPreferenceProfile:
    """
    Build the ranking profile for ``uid`` from ``users/{uid}``.

    Anonymous callers and unreadable documents get the default profile.
    """
    if not uid:
        return default_profile()

    try:
        db = db or get_db()
        doc = db.collection(USERS_COLLECTION).document(uid).get()
        data = doc.to_dict() if doc.exists else {}
    except Exception as e:
        print(f"[firebase] Load prefs error for {uid}: {e}")
        return build_profile([], uid=uid, default_tag=settings.DEFAULT_PREFERENCE_TAG)

    data = data or {}
    return build_profile(
        flatten_sub_genres(data.get("subGenres")),
        location=_stored_location(data),
        uid=uid,
        default_tag=settings.DEFAULT_PREFERENCE_TAG,
    )


def update_user_location(uid: str, latitude: float, longitude: float, db=None) -> None:
    """Store last-known location so later requests without coordinates can still rank by distance."""
    db = db or get_db()
    db.collection(USERS_COLLECTION).document(uid).set(
        {
            "last_latitude": latitude,
            "last_longitude": longitude,
            "location_updated_at": utc_timestamp(),
        },
        merge=True,
    )
