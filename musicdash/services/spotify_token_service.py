# musicdash/services/spotify_token_service.py
import base64
import logging
import threading
from typing import Callable, Dict, Optional

import requests

from musicdash.config.settings import (
    HTTP_TIMEOUT_SECONDS,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI,
)
from musicdash.models.token_model import REFRESH_ERROR, TokenState
from musicdash.services.errors import NeedsReauthError, SpotifyOAuthError
from musicdash.services.scheduler import epoch_ms

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"

# Refresh a little before Spotify says the token dies
EXPIRY_MARGIN_MS = 30_000


def _basic_auth_header() -> Dict[str, str]:
    raw = f"{SPOTIFY_CLIENT_ID}:{SPOTIFY_CLIENT_SECRET}".encode()
    return {"Authorization": f"Basic {base64.b64encode(raw).decode()}"}


def _post_token_request(payload: Dict, http=None) -> Dict:
    http = http or requests
    r = http.post(
        SPOTIFY_TOKEN_URL,
        data=payload,
        headers=_basic_auth_header(),
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    try:
        data = r.json()
    except ValueError:
        data = {}

    if r.status_code != 200 or "access_token" not in data:
        description = data.get("error_description") or data.get("error") or r.text
        raise SpotifyOAuthError(
            f"Spotify token request failed ({r.status_code}): {description}",
            status=r.status_code,
            payload=data,
        )
    return data


def exchange_code_for_token(code: str, http=None, clock: Callable[[], int] = epoch_ms) -> TokenState:
    """
    Authorization-code exchange done right after the Spotify callback.
    """
    data = _post_token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": SPOTIFY_REDIRECT_URI,
        },
        http=http,
    )
    return TokenState(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at_ms=clock() + int(data.get("expires_in", 3600)) * 1000,
        scope=data.get("scope"),
    )


def request_token_refresh(refresh_token: str, http=None) -> Dict:
    return _post_token_request(
        {"grant_type": "refresh_token", "refresh_token": refresh_token},
        http=http,
    )


class TokenStore:
    """
    Owns the single Spotify token pair of one dashboard session.

    - get_valid_token(): access token, refreshed first if it has expired
    - refresh(): at most one refresh in flight; concurrent callers reuse its result
    - after a failed refresh every call raises NeedsReauthError, no network
      traffic, until reauthenticate() installs a fresh sign-in
    """

    def __init__(
        self,
        state: TokenState,
        refresher: Callable[[str], Dict] = request_token_refresh,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._state = state
        self._refresher = refresher
        self._clock = clock
        self._lock = threading.Lock()
        self.refresh_count = 0

    @property
    def state(self) -> TokenState:
        return self._state

    def _is_expired(self, state: TokenState) -> bool:
        return bool(state.expires_at_ms) and self._clock() >= state.expires_at_ms - EXPIRY_MARGIN_MS

    def get_valid_token(self) -> Optional[str]:
        state = self._state
        if state.needs_reauth:
            raise NeedsReauthError(REFRESH_ERROR)
        if not state.access_token:
            return None
        if self._is_expired(state):
            return self.refresh(stale_token=state.access_token)
        return state.access_token

    def refresh(self, stale_token: Optional[str] = None) -> str:
        """
        Exchange the refresh token for a new access token.

        `stale_token` is the token the caller saw fail; when another caller
        already replaced it, that newer token is returned instead of
        refreshing a second time.
        """
        with self._lock:
            state = self._state
            if state.needs_reauth:
                raise NeedsReauthError(REFRESH_ERROR)

            if (
                stale_token is not None
                and state.access_token
                and state.access_token != stale_token
                and not self._is_expired(state)
            ):
                return state.access_token

            if not state.refresh_token:
                logger.warning("Spotify token refresh impossible: no refresh token")
                self._state = state.model_copy(update={"last_error": REFRESH_ERROR})
                raise NeedsReauthError(REFRESH_ERROR)

            self.refresh_count += 1
            try:
                data = self._refresher(state.refresh_token)
            except (SpotifyOAuthError, requests.RequestException, KeyError, ValueError) as e:
                logger.error(f"Error refreshing Spotify access token: {e}")
                self._state = state.model_copy(update={"last_error": REFRESH_ERROR})
                raise NeedsReauthError(REFRESH_ERROR) from e

            # Spotify does not always rotate the refresh token, keep the old one
            self._state = TokenState(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token") or state.refresh_token,
                expires_at_ms=self._clock() + int(data.get("expires_in", 3600)) * 1000,
                scope=data.get("scope", state.scope),
            )
            logger.info("Spotify access token refreshed")
            return self._state.access_token

    def reauthenticate(self, state: TokenState) -> None:
        with self._lock:
            self._state = state
