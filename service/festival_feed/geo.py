"""Resolve the caller's coordinates, or decide there are none."""

from __future__ import annotations

import math
from typing import Optional

from .errors import LocationUnavailable


def resolve_location(latitude: Optional[float], longitude: Optional[float]) -> tuple[float, float]:
    if latitude is None or longitude is None:
        raise LocationUnavailable("no coordinates supplied")
    try:
        lat, lon = float(latitude), float(longitude)
    except (TypeError, ValueError) as e:
        raise LocationUnavailable(f"invalid coordinates: {e}") from e
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise LocationUnavailable("non-finite coordinates")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise LocationUnavailable(f"coordinates out of range: {lat},{lon}")
    return lat, lon


def optional_location(latitude: Optional[float], longitude: Optional[float]) -> Optional[tuple[float, float]]:
    """Missing or unusable coordinates mean "no location", never an error."""
    try:
        return resolve_location(latitude, longitude)
    except LocationUnavailable:
        return None
