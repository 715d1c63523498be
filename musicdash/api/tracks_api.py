# musicdash/api/tracks_api.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from musicdash.models.playback_models import RecentTracksResponse, TrackListResponse
from musicdash.services.session_service import DashboardSession
from musicdash.services.spotify_client import ApiOutcome, ApiResult
from musicdash.services.user_auth import get_current_session

router = APIRouter()
logger = logging.getLogger(__name__)


def _unwrap(result: ApiResult, what: str):
    if result.ok:
        return result.data or []

    logger.error(f"Error fetching {what}: {result.describe()}")
    if result.outcome in (ApiOutcome.UNAUTHENTICATED, ApiOutcome.UNAUTHORIZED, ApiOutcome.NEEDS_REAUTH):
        raise HTTPException(status_code=401, detail=result.describe())
    if result.outcome is ApiOutcome.RATE_LIMITED:
        raise HTTPException(
            status_code=429,
            detail=result.describe(),
            headers={"Retry-After": str(int(result.retry_after_seconds or 1))},
        )
    raise HTTPException(status_code=502, detail=result.describe())


@router.get("/tracks/recent", response_model=RecentTracksResponse)
def recently_played(
    limit: int = Query(20, ge=1, le=50),
    session: DashboardSession = Depends(get_current_session),
):
    return {"tracks": _unwrap(session.spotify.get_recently_played(limit), "recent tracks")}


@router.get("/tracks/top", response_model=TrackListResponse)
def top_tracks(
    limit: int = Query(20, ge=1, le=50),
    time_range: str = Query("short_term", pattern="^(short_term|medium_term|long_term)$"),
    session: DashboardSession = Depends(get_current_session),
):
    return {"tracks": _unwrap(session.spotify.get_top_tracks(limit, time_range), "top tracks")}


@router.get("/tracks/search", response_model=TrackListResponse)
def search(
    q: str = Query(..., min_length=1),
    session: DashboardSession = Depends(get_current_session),
):
    # Search failures degrade to an empty list, the page keeps working
    result = session.spotify.search_tracks(q)
    if not result.ok:
        logger.error(f"Error searching tracks: {result.describe()}")
        return {"tracks": []}
    return {"tracks": result.data or []}


@router.get("/tracks/recommendations", response_model=TrackListResponse)
def recommendations(
    seed: List[str] = Query(..., description="Seed track ids (up to 5 are used)"),
    session: DashboardSession = Depends(get_current_session),
):
    result = session.spotify.get_recommendations(seed)
    if not result.ok:
        logger.error(f"Error fetching recommendations: {result.describe()}")
        return {"tracks": []}
    return {"tracks": result.data or []}
