"""Map raw Discovery API records onto ``Event`` and drop duplicates."""

from __future__ import annotations

from typing import Iterable, Optional

from .models import DEFAULT_GENRE, UNKNOWN_VENUE, Event, normalize_name

DEDUP_BY_ID = "id"
DEDUP_BY_ID_AND_NAME = "id_and_name"

_WIDE_RATIOS = {"16_9", "16:9"}


def _first(items) -> dict:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def pick_image(images) -> str:
    """16:9 image if there is one, else the first image, else ""."""
    if not isinstance(images, list):
        return ""
    for img in images:
        if isinstance(img, dict) and img.get("ratio") in _WIDE_RATIOS and img.get("url"):
            return img["url"]
    return _first(images).get("url") or ""


def normalize_record(raw: dict) -> Optional[Event]:
    event_id = str(raw.get("id") or "").strip()
    if not event_id:
        return None

    embedded = raw.get("_embedded") or {}
    venue = _first(embedded.get("venues"))
    attraction = _first(embedded.get("attractions"))
    classification = _first(raw.get("classifications"))
    price = _first(raw.get("priceRanges"))
    location = venue.get("location") or {}

    return Event(
        id=event_id,
        name=raw.get("name") or "",
        image_url=pick_image(raw.get("images")),
        start_date=((raw.get("dates") or {}).get("start") or {}).get("localDate") or None,
        venue_name=venue.get("name") or UNKNOWN_VENUE,
        city=(venue.get("city") or {}).get("name") or "",
        state_code=(venue.get("state") or {}).get("stateCode") or "",
        artist_name=attraction.get("name") or "",
        genre=(classification.get("genre") or {}).get("name") or DEFAULT_GENRE,
        sub_genre=(classification.get("subGenre") or {}).get("name") or "",
        segment=(classification.get("segment") or {}).get("name") or "",
        price_min=_to_float(price.get("min")),
        price_currency=price.get("currency") or "USD",
        external_url=raw.get("url") or "",
        latitude=_to_float(location.get("latitude")),
        longitude=_to_float(location.get("longitude")),
        popularity=_to_float(raw.get("popularity")),
    )


def dedup(events: Iterable[Event], mode: str = DEDUP_BY_ID) -> list[Event]:
    """
    Keep the first occurrence of each event, preserving input order.

    ``id_and_name`` also drops an event whose normalised name was already seen
    under a different id (reissued listings).
    """
    if mode not in (DEDUP_BY_ID, DEDUP_BY_ID_AND_NAME):
        raise ValueError(f"Unknown dedup mode: {mode}")

    seen_ids: set[str] = set()
    seen_names: set[str] = set()
    deduped: list[Event] = []
    for ev in events:
        name_key = normalize_name(ev.name)
        if ev.id in seen_ids:
            continue
        if mode == DEDUP_BY_ID_AND_NAME and name_key and name_key in seen_names:
            continue
        seen_ids.add(ev.id)
        if name_key:
            seen_names.add(name_key)
        deduped.append(ev)
    return deduped


def normalize(raw_records: Iterable[dict], mode: str = DEDUP_BY_ID) -> list[Event]:
    events = []
    for raw in raw_records or []:
        if not isinstance(raw, dict):
            continue
        ev = normalize_record(raw)
        if ev is not None:
            events.append(ev)
    return dedup(events, mode)
