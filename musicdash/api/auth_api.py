# musicdash/api/auth_api.py
import logging
from urllib.parse import urlencode, urlsplit

import requests
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from musicdash.config.settings import (
    SESSION_COOKIE_NAME,
    SESSION_MAX_AGE,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES,
)
from musicdash.models.spotify_auth_models import SessionResponse
from musicdash.models.token_model import REFRESH_ERROR
from musicdash.services.errors import SpotifyOAuthError
from musicdash.services.jwt_service import create_session_token
from musicdash.services.oauth_state_service import create_state, pop_state
from musicdash.services.spotify_token_service import exchange_code_for_token
from musicdash.services.user_auth import get_registry, lookup_session

router = APIRouter()
logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"


def _safe_callback(callback_url: str | None) -> str:
    # Only same-origin paths; anything else goes to the dashboard.
    # Browsers read "\" as "/" and drop tabs/newlines inside URLs.
    if not callback_url or not callback_url.startswith("/") or callback_url.startswith("//"):
        return "/dashboard"
    if "\\" in callback_url or any(ord(c) < 0x20 or ord(c) == 0x7F for c in callback_url):
        return "/dashboard"
    parts = urlsplit(callback_url)
    if parts.scheme or parts.netloc:
        return "/dashboard"
    return callback_url


@router.get(
    "/signin",
    summary="Spotify Login: redirect to the Spotify consent page",
)
def signin(callbackUrl: str | None = Query(None)):
    if not SPOTIFY_CLIENT_ID:
        raise HTTPException(status_code=500, detail="SPOTIFY_CLIENT_ID is not configured")

    # 1. One-shot state, remembers where to land after sign-in
    state = create_state(_safe_callback(callbackUrl))

    # 2. Spotify authorize URL (authorization code flow, client secret on our side)
    query = urlencode(
        {
            "client_id": SPOTIFY_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": SPOTIFY_REDIRECT_URI,
            "scope": SPOTIFY_SCOPES,
            "state": state,
        }
    )
    return RedirectResponse(url=f"{SPOTIFY_AUTHORIZE_URL}?{query}", status_code=302)


@router.get(
    "/callback/spotify",
    summary="Spotify OAuth Callback",
    description="Spotify redirects here with code/state; we exchange the code and start a dashboard session.",
)
def callback(
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
):
    if error:
        # e.g. access_denied when the user cancels the consent screen
        logger.warning(f"Spotify sign-in cancelled: {error}")
        return RedirectResponse(url=f"/login?{urlencode({'error': error})}", status_code=302)

    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    callback_url = pop_state(state)
    if callback_url is None:
        raise HTTPException(status_code=400, detail="Missing or expired state")

    try:
        token_state = exchange_code_for_token(code)
    except (SpotifyOAuthError, requests.RequestException) as e:
        logger.error(f"Spotify code exchange failed: {e}")
        raise HTTPException(status_code=400, detail="Spotify sign-in failed")

    registry = get_registry(request)
    # Signing in again replaces the previous session of this browser
    previous = lookup_session(request)
    if previous is not None:
        registry.end(previous.session_id)

    session = registry.create(token_state)

    response = RedirectResponse(url=callback_url, status_code=302)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        create_session_token(session.session_id),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


@router.api_route("/signout", methods=["GET", "POST"], summary="Sign out and drop the session")
def signout(request: Request):
    session = lookup_session(request)
    if session is not None:
        get_registry(request).end(session.session_id)

    response = RedirectResponse(url="/login", status_code=302)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@router.get("/session", response_model=SessionResponse)
def session_status(request: Request):
    session = lookup_session(request)
    if session is None:
        return SessionResponse(authenticated=False)

    state = session.token_store.state
    return SessionResponse(
        authenticated=True,
        error=REFRESH_ERROR if state.needs_reauth else None,
        expires_at_ms=state.expires_at_ms or None,
    )
