# musicdash/services/spotify_client.py
import dataclasses
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from musicdash.config.settings import HTTP_TIMEOUT_SECONDS
from musicdash.services.errors import NeedsReauthError
from musicdash.services.rate_limit import RateLimitState
from musicdash.services.scheduler import Scheduler, ThreadingScheduler
from musicdash.services.spotify_now_playing import (
    parse_recently_played,
    parse_tracks,
)
from musicdash.services.spotify_token_service import TokenStore

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE = "https://api.spotify.com/v1"
SEARCH_LIMIT = 10
RECOMMENDATION_LIMIT = 10
MAX_SEED_TRACKS = 5
MARKET = "US"

_SEARCH_CLEANUP = re.compile(r"[^\w\s&'\"-]")
_TRACK_ID = re.compile(r"^[a-zA-Z0-9]+$")


class ApiOutcome(str, Enum):
    OK = "ok"
    NO_CONTENT = "no_content"
    SKIPPED = "skipped"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    NEEDS_REAUTH = "needs_reauth"
    PREMIUM_REQUIRED = "premium_required"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class ApiResult:
    outcome: ApiOutcome
    data: Any = None
    status: Optional[int] = None
    message: Optional[str] = None
    retry_after_seconds: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (ApiOutcome.OK, ApiOutcome.NO_CONTENT)

    def describe(self) -> str:
        """User-facing text for a failed call."""
        if self.outcome is ApiOutcome.RATE_LIMITED:
            wait = int(self.retry_after_seconds or 0)
            return f"429: Too many requests to Spotify API. Retrying in {wait} seconds."
        if self.outcome is ApiOutcome.PREMIUM_REQUIRED:
            return "Premium required or no active device found. Please open Spotify on a device first."
        if self.outcome in (ApiOutcome.UNAUTHENTICATED, ApiOutcome.UNAUTHORIZED, ApiOutcome.NEEDS_REAUTH):
            return "Session expired. Please refresh the page or sign in again."
        if self.outcome is ApiOutcome.NOT_FOUND:
            return f"Spotify API endpoint not found (404): {self.message or ''}".strip()
        if self.outcome is ApiOutcome.NETWORK_ERROR:
            return f"Spotify API request failed: {self.message}"
        return self.message or f"HTTP error! status: {self.status}"


def _with_data(result: ApiResult, parse: Callable[[Any], Any], empty: Any) -> ApiResult:
    if result.outcome is ApiOutcome.OK:
        return dataclasses.replace(result, data=parse(result.data or {}))
    if result.outcome is ApiOutcome.NO_CONTENT:
        return dataclasses.replace(result, data=empty)
    return result


def _provider_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return body.get("error_description") or error
    return f"HTTP error! status: {r.status_code}"


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class SpotifyApiClient:
    """
    Rate-limited Spotify Web API wrapper.

    call() never raises for provider statuses; it returns an ApiResult:
    - 2xx → OK (JSON body) / NO_CONTENT (204 or empty body)
    - 401 → one token refresh and one retry
    - 403 → PREMIUM_REQUIRED, 404 → NOT_FOUND
    - 429 → RATE_LIMITED, interval backoff, one scheduled retry
    """

    def __init__(
        self,
        token_store: TokenStore,
        rate_limit: Optional[RateLimitState] = None,
        http: Optional[requests.Session] = None,
        scheduler: Optional[Scheduler] = None,
        api_base: str = SPOTIFY_API_BASE,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.token_store = token_store
        self.rate_limit = rate_limit or RateLimitState()
        self.http = http or requests.Session()
        self.scheduler = scheduler or ThreadingScheduler()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    def call(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        force: bool = False,
        on_retry: Optional[Callable[[ApiResult], None]] = None,
        schedule: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ) -> ApiResult:
        """
        `schedule(delay_seconds, fn)` runs the 429 retry; callers that own
        their timers pass their own so teardown cancels the retry too.
        """
        try:
            token = self.token_store.get_valid_token()
        except NeedsReauthError:
            return ApiResult(ApiOutcome.NEEDS_REAUTH, message="RefreshAccessTokenError")
        if not token:
            return ApiResult(ApiOutcome.UNAUTHENTICATED, message="No access token provided")

        if not self.rate_limit.try_acquire(force=force):
            logger.debug(f"Skipping {endpoint}: inside minimum fetch interval")
            return ApiResult(ApiOutcome.SKIPPED)

        result = self._send(method, endpoint, token, params, body)

        if result.outcome is ApiOutcome.UNAUTHORIZED:
            logger.info(f"Spotify returned 401 for {endpoint}, refreshing token")
            try:
                token = self.token_store.refresh(stale_token=token)
            except NeedsReauthError:
                return ApiResult(ApiOutcome.NEEDS_REAUTH, status=401, message="RefreshAccessTokenError")
            result = self._send(method, endpoint, token, params, body)

        if result.outcome is ApiOutcome.RATE_LIMITED and on_retry is not None:
            delay = result.retry_after_seconds
            if delay is None:
                delay = self.rate_limit.min_interval_ms / 1000
            logger.info(f"Rate limited on {endpoint}; retrying once in {delay}s")
            (schedule or self.scheduler.call_later)(
                delay,
                lambda: on_retry(self.call(endpoint, method, params, body, force=True)),
            )

        return result

    def _send(
        self,
        method: str,
        endpoint: str,
        token: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Dict[str, Any]],
    ) -> ApiResult:
        url = f"{self.api_base}/{endpoint.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        logger.debug(f"Spotify {method} {endpoint.split('?')[0]}")

        try:
            r = self.http.request(
                method, url, headers=headers, params=params, json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Spotify request failed: {method} {endpoint}: {e}")
            return ApiResult(ApiOutcome.NETWORK_ERROR, message=str(e))

        return self._map_response(r, endpoint)

    def _map_response(self, r: requests.Response, endpoint: str) -> ApiResult:
        status = r.status_code

        if status == 429:
            backoff_ms = self.rate_limit.record_rate_limited()
            retry_after = _parse_retry_after(r.headers.get("Retry-After"))
            logger.warning(
                f"Rate limited. Retry-After={retry_after}s, new min interval: {backoff_ms}ms"
            )
            return ApiResult(
                ApiOutcome.RATE_LIMITED,
                status=status,
                retry_after_seconds=retry_after if retry_after is not None else backoff_ms / 1000,
            )

        self.rate_limit.record_response()

        if 200 <= status < 300:
            if status == 204 or not r.content:
                return ApiResult(ApiOutcome.NO_CONTENT, status=status)
            try:
                return ApiResult(ApiOutcome.OK, data=r.json(), status=status)
            except ValueError:
                # Spotify answers some player commands with a non-JSON body
                return ApiResult(ApiOutcome.NO_CONTENT, status=status)

        if status == 401:
            return ApiResult(ApiOutcome.UNAUTHORIZED, status=status, message=_provider_message(r))
        if status == 403:
            return ApiResult(ApiOutcome.PREMIUM_REQUIRED, status=status, message=_provider_message(r))
        if status == 404:
            logger.error(f"404 Not Found error for endpoint: {endpoint.split('?')[0]}")
            return ApiResult(ApiOutcome.NOT_FOUND, status=status, message=endpoint.split("?")[0])

        message = _provider_message(r)
        logger.error(f"Spotify API error {status} on {endpoint}: {message}")
        return ApiResult(ApiOutcome.API_ERROR, status=status, message=message)

    # ------------------------------------------------------------------
    # Player
    # ------------------------------------------------------------------

    def get_current_playback(
        self,
        force: bool = False,
        on_retry: Optional[Callable[[ApiResult], None]] = None,
        schedule: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ) -> ApiResult:
        """Raw /me/player result; callers parse with parse_playback()."""
        return self.call("me/player", force=force, on_retry=on_retry, schedule=schedule)

    def play(self) -> ApiResult:
        return self.call("me/player/play", method="PUT", force=True)

    def pause(self) -> ApiResult:
        return self.call("me/player/pause", method="PUT", force=True)

    def next_track(self) -> ApiResult:
        return self.call("me/player/next", method="POST", force=True)

    def previous_track(self) -> ApiResult:
        return self.call("me/player/previous", method="POST", force=True)

    def seek(self, position_ms: int) -> ApiResult:
        return self.call(
            "me/player/seek",
            method="PUT",
            params={"position_ms": max(0, int(position_ms))},
            force=True,
        )

    # ------------------------------------------------------------------
    # Catalog (user-triggered, never held back by the polling gate)
    # ------------------------------------------------------------------

    def get_recently_played(self, limit: int = 20) -> ApiResult:
        result = self.call(
            "me/player/recently-played", params={"limit": min(max(limit, 1), 50)}, force=True
        )
        return _with_data(result, parse_recently_played, [])

    def get_top_tracks(self, limit: int = 20, time_range: str = "short_term") -> ApiResult:
        result = self.call(
            "me/top/tracks", params={"limit": limit, "time_range": time_range}, force=True
        )
        return _with_data(result, lambda data: parse_tracks(data.get("items", [])), [])

    def search_tracks(self, query: str) -> ApiResult:
        clean_query = _SEARCH_CLEANUP.sub(" ", (query or "").strip()).strip()
        if not clean_query:
            logger.warning("Empty search query")
            return ApiResult(ApiOutcome.OK, data=[])

        logger.info(f'Searching for tracks: "{clean_query}"')
        result = self.call(
            "search",
            params={"q": clean_query, "type": "track", "limit": SEARCH_LIMIT, "market": MARKET},
            force=True,
        )
        return _with_data(
            result, lambda data: parse_tracks((data.get("tracks") or {}).get("items") or []), []
        )

    def get_recommendations(self, seed_track_ids: List[str]) -> ApiResult:
        valid_ids = [i for i in seed_track_ids if isinstance(i, str) and _TRACK_ID.match(i)]
        if not valid_ids:
            logger.warning("No valid seed tracks provided for recommendations")
            return ApiResult(ApiOutcome.OK, data=[])

        result = self.call(
            "recommendations",
            params={
                "seed_tracks": ",".join(valid_ids[:MAX_SEED_TRACKS]),
                "market": MARKET,
                "limit": RECOMMENDATION_LIMIT,
            },
            force=True,
        )
        return _with_data(result, lambda data: parse_tracks(data.get("tracks") or []), [])