# musicdash/services/user_auth.py
from typing import Optional

from fastapi import HTTPException, Request

from musicdash.config.settings import SESSION_COOKIE_NAME
from musicdash.services.jwt_service import decode_session_token
from musicdash.services.session_service import DashboardSession, SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def lookup_session(request: Request) -> Optional[DashboardSession]:
    """
    Session cookie (JWT) → DashboardSession, or None when the cookie is
    missing, tampered with, expired, or points at a session we no longer hold.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    session_id = decode_session_token(token)
    if not session_id:
        return None
    return get_registry(request).get(session_id)


def get_current_session(request: Request) -> DashboardSession:
    session = lookup_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session
