from fastapi import BackgroundTasks, FastAPI, HTTPException, Header, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import date
from dotenv import load_dotenv
import os

from firebase_admin import auth as firebase_auth

# Load environment from mounted secret path if provided, else from local .env
dotenv_path = os.getenv("DOTENV_PATH")
if dotenv_path and os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    load_dotenv()

from service.festival_feed import firebase_store, pipeline
from service.festival_feed.errors import (
    EmptyResult,
    FetchFailed,
    LocationUnavailable,
    RateLimited,
    SupersededRequest,
)
from service.festival_feed.geo import optional_location, resolve_location
from service.festival_feed.interaction_logger import log_interaction
from service.festival_feed.models import INTERACTION_SCORES
from service.festival_feed.ticketmaster_client import SORT_DATE, SORT_RELEVANCE, EventFilter
from service.festival_feed import settings

app = FastAPI(title="Festival Feed", version="1.0.0")


class SimpleLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        method = request.method
        try:
            response = await call_next(request)
            print(f"{method} {path} -> {response.status_code}")
            return response
        except Exception as e:
            print(f"{method} {path} -> error: {e}")
            raise


app.add_middleware(SimpleLoggingMiddleware)


class InteractionPayload(BaseModel):
    eventId: str = Field(min_length=1)
    # explicit score, or a named action mapped to its score
    score: Optional[float] = Field(default=None, gt=0)
    action: Optional[Literal["view", "open", "purchase"]] = None


class LocationPayload(BaseModel):
    latitude: float
    longitude: float


@app.exception_handler(RateLimited)
async def _rate_limited(request: Request, exc: RateLimited):
    return JSONResponse(status_code=429, content={"detail": exc.message})


@app.exception_handler(FetchFailed)
async def _fetch_failed(request: Request, exc: FetchFailed):
    print(f"[explore] Catalog fetch failed: {exc.message}")
    return JSONResponse(status_code=502, content={"detail": "Failed to fetch events."})


@app.exception_handler(SupersededRequest)
async def _superseded(request: Request, exc: SupersededRequest):
    return JSONResponse(status_code=409, content={"detail": "Superseded by a newer request."})


def _empty(message: str, **extra) -> dict:
    return {"events": [], "empty": True, "message": message, **extra}


def _verify_and_get_user(authorization: Optional[str]) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        firebase_store.get_db()
    except Exception as e:
        print(f"[firebase] Not configured: {e}")
        raise HTTPException(
            status_code=501,
            detail=(
                "Firebase not configured. Set FIREBASE_SERVICE_ACCOUNT_PATH and "
                "FIREBASE_PROJECT_ID environment variables."
            ),
        )
    try:
        return firebase_auth.verify_id_token(token)
    except Exception as e:
        raise HTTPException(status_code=401, detail=f"Invalid ID token: {e}")


def _optional_uid(authorization: Optional[str]) -> Optional[str]:
    """Explore works signed out; a bad token is still an error."""
    if not authorization:
        return None
    return _verify_and_get_user(authorization).get("uid")


def _profile_for(uid: Optional[str], latitude: Optional[float], longitude: Optional[float]):
    profile = firebase_store.load_preference_profile(uid)
    location = optional_location(latitude, longitude)
    if location is not None:
        return profile.with_location(location)
    return profile


@app.get("/")
async def root():
    return {"status": "ok", "service": "festival_feed"}


@app.get("/explore")
def explore(
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    authorization: Optional[str] = Header(default=None),
):
    uid = _optional_uid(authorization)
    profile = _profile_for(uid, latitude, longitude)
    try:
        result = pipeline.build_explore_page(profile, pipeline.get_session(uid))
    except EmptyResult as e:
        return _empty(str(e), recommended=[], popular=[])
    return result.to_dict()


@app.get("/explore/near_me")
def explore_near_me(
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius: float = settings.NEAR_ME_RADIUS_MILES,
    authorization: Optional[str] = Header(default=None),
):
    uid = _optional_uid(authorization)
    profile = _profile_for(uid, latitude, longitude)
    try:
        result = pipeline.build_near_me_page(profile, pipeline.get_session(uid), radius_miles=radius)
    except LocationUnavailable:
        return {"events": [], "locationAvailable": False}
    except EmptyResult as e:
        return _empty(str(e), locationAvailable=True)
    return {**result.to_dict(), "locationAvailable": True}


@app.get("/explore/feed")
def explore_feed(
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    size: int = settings.EXPLORE_FEED_PAGE_SIZE,
    authorization: Optional[str] = Header(default=None),
):
    if size < 1:
        raise HTTPException(status_code=400, detail="size must be at least 1")
    uid = _optional_uid(authorization)
    profile = _profile_for(uid, latitude, longitude)
    try:
        result = pipeline.build_feed(profile, pipeline.get_session(uid), page_size=size)
    except EmptyResult as e:
        return _empty(str(e), rotated=False)
    return result.to_dict()


@app.delete("/explore/session")
def reset_explore_session(authorization: Optional[str] = Header(default=None)):
    uid = _optional_uid(authorization)
    return {"reset": pipeline.drop_session(uid)}


@app.get("/search")
def search(
    keyword: Optional[str] = None,
    location: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius: Optional[float] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort: str = SORT_RELEVANCE,
    authorization: Optional[str] = Header(default=None),
):
    if sort not in (SORT_RELEVANCE, SORT_DATE):
        raise HTTPException(status_code=400, detail=f"sort must be '{SORT_RELEVANCE}' or '{SORT_DATE}'")
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date is before start_date")

    uid = _optional_uid(authorization)
    profile = _profile_for(uid, latitude, longitude)
    coords = optional_location(latitude, longitude)
    event_filter = EventFilter(
        keyword=keyword,
        classification_name=settings.DEFAULT_CLASSIFICATION,
        latitude=coords[0] if coords else None,
        longitude=coords[1] if coords else None,
        radius=radius,
        start_date=start_date,
        end_date=end_date,
        sort=sort,
    )
    if coords is None:
        event_filter = event_filter.with_location_text(location)

    session = pipeline.get_session(f"search:{uid or pipeline.ANONYMOUS}")
    try:
        events = pipeline.search_events(event_filter, profile, session=session)
    except EmptyResult as e:
        return _empty(str(e))
    return {"events": [ev.to_dict() for ev in events]}


@app.post("/interactions", status_code=202)
def submit_interaction(
    payload: InteractionPayload,
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(default=None),
):
    decoded = _verify_and_get_user(authorization)
    score = payload.score if payload.score is not None else INTERACTION_SCORES.get(payload.action)
    if score is None:
        raise HTTPException(status_code=400, detail="score or action is required")
    background_tasks.add_task(log_interaction, decoded.get("uid"), payload.eventId, score)
    return {"status": "accepted", "eventId": payload.eventId}


@app.post("/user_location")
def submit_user_location(payload: LocationPayload, authorization: Optional[str] = Header(default=None)):
    decoded = _verify_and_get_user(authorization)
    try:
        lat, lon = resolve_location(payload.latitude, payload.longitude)
    except LocationUnavailable as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        firebase_store.update_user_location(decoded["uid"], lat, lon)
    except Exception as e:
        print(e)
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": "Location updated"}
