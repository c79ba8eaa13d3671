"""Per-(user, event) interest scores that only ever go up."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import LogWriteFailed
from .firebase_store import get_db
from .models import utc_timestamp

INTERACTIONS_COLLECTION = "eventInteractions"


@dataclass
class InteractionLogResult:
    user_id: Optional[str]
    event_id: str
    score: float
    previous_score: float = 0.0
    written: bool = False
    error: Optional[LogWriteFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def interaction_doc_id(user_id: str, event_id: str) -> str:
    return f"{user_id}_{event_id}"


def _stored_score(data: dict) -> float:
    try:
        return float(data.get("score", 0) or 0)
    except (TypeError, ValueError):
        return 0.0


def log_interaction(
    user_id: Optional[str],
    event_id: str,
    score: float,
    db=None,
    now: Optional[datetime] = None,
) -> InteractionLogResult:
    """
    Record ``score`` for (user_id, event_id) if it beats the stored score.

    Never raises: failures are printed and returned on ``result.error`` so
    the navigation or purchase that triggered the log always goes ahead.
    """
    result = InteractionLogResult(user_id=user_id, event_id=event_id, score=score)
    if not user_id:
        print("[interactions] No user logged in - cannot log interaction")
        result.error = LogWriteFailed("no authenticated user")
        return result

    try:
        db = db or get_db()
        ref = db.collection(INTERACTIONS_COLLECTION).document(interaction_doc_id(user_id, event_id))
        existing = ref.get()
        result.previous_score = _stored_score(existing.to_dict() or {}) if existing.exists else 0.0

        if score > result.previous_score:
            ref.set({
                "userId": user_id,
                "eventId": event_id,
                "festivalId": event_id,
                "score": score,
                "timestamp": utc_timestamp(now),
            })
            result.written = True
            print(f"[interactions] Logged interaction for {event_id} with score {score}")
        else:
            print(f"[interactions] {event_id} already has score {result.previous_score}, not updated")
    except Exception as e:
        print(f"[interactions] Failed to log interaction for {event_id}: {e}")
        result.error = LogWriteFailed(str(e))

    return result
