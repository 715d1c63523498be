# musicdash/middleware/auth_gate.py
import logging
from urllib.parse import urlencode

from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from musicdash.services.user_auth import lookup_session

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/", "/login"}
BYPASS_PREFIXES = ("/api/auth", "/static", "/favicon.ico", "/health", "/docs", "/openapi.json")


class AuthGateMiddleware(BaseHTTPMiddleware):
    """
    Route-level sign-in gate.

    - signed out + protected page → /login?callbackUrl=<path>
    - signed out + /api/...       → 401 JSON
    - signed in + / or /login     → /dashboard
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path.startswith(BYPASS_PREFIXES):
            return await call_next(request)

        signed_in = lookup_session(request) is not None

        if path in PUBLIC_PATHS:
            if signed_in:
                return RedirectResponse(url="/dashboard", status_code=302)
            return await call_next(request)

        if not signed_in:
            if path.startswith("/api/"):
                return JSONResponse({"detail": "Not authenticated"}, status_code=401)
            logger.debug(f"Redirecting signed-out request for {path} to /login")
            return RedirectResponse(url=f"/login?{urlencode({'callbackUrl': path})}", status_code=302)

        return await call_next(request)
