# musicdash/api/player_api.py
from fastapi import APIRouter, Depends, HTTPException, Query

from musicdash.models.playback_models import PlayerView
from musicdash.services.session_service import DashboardSession
from musicdash.services.spotify_client import ApiOutcome, ApiResult
from musicdash.services.user_auth import get_current_session

router = APIRouter()

_FAILURE_STATUS = {
    ApiOutcome.SKIPPED: 409,
    ApiOutcome.UNAUTHENTICATED: 401,
    ApiOutcome.UNAUTHORIZED: 401,
    ApiOutcome.NEEDS_REAUTH: 401,
    ApiOutcome.PREMIUM_REQUIRED: 403,
    ApiOutcome.NOT_FOUND: 404,
    ApiOutcome.RATE_LIMITED: 429,
}


def _control_result(result: ApiResult, session: DashboardSession) -> PlayerView:
    view = session.poller.view()
    if result.ok:
        return view
    if result.outcome is ApiOutcome.SKIPPED:
        detail = result.message or "Player is not running"
    else:
        detail = view.error or result.describe()
    raise HTTPException(status_code=_FAILURE_STATUS.get(result.outcome, 502), detail=detail)


@router.get("/player", response_model=PlayerView)
def get_player(session: DashboardSession = Depends(get_current_session)):
    """Current player state; progress is extrapolated between polls."""
    return session.poller.view()


@router.post("/player/refresh", response_model=PlayerView)
def refresh_player(session: DashboardSession = Depends(get_current_session)):
    session.poller.poll(force=True)
    return session.poller.view()


@router.post("/player/play-pause", response_model=PlayerView)
def play_pause(session: DashboardSession = Depends(get_current_session)):
    return _control_result(session.poller.play_pause(), session)


@router.post("/player/next", response_model=PlayerView)
def skip_next(session: DashboardSession = Depends(get_current_session)):
    return _control_result(session.poller.skip_next(), session)


@router.post("/player/previous", response_model=PlayerView)
def skip_previous(session: DashboardSession = Depends(get_current_session)):
    return _control_result(session.poller.skip_previous(), session)


@router.put("/player/seek", response_model=PlayerView)
def seek(
    position_ms: int = Query(..., ge=0),
    session: DashboardSession = Depends(get_current_session),
):
    return _control_result(session.poller.seek_to_position(position_ms), session)


@router.post("/player/drag/start", response_model=PlayerView)
def drag_start(session: DashboardSession = Depends(get_current_session)):
    """Pause passive polling while the user drags the progress bar."""
    session.poller.begin_drag()
    return session.poller.view()


@router.post("/player/drag/end", response_model=PlayerView)
def drag_end(session: DashboardSession = Depends(get_current_session)):
    session.poller.end_drag()
    return session.poller.view()


@router.delete("/player/error", response_model=PlayerView)
def dismiss_error(session: DashboardSession = Depends(get_current_session)):
    session.poller.clear_error()
    return session.poller.view()
