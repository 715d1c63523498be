# musicdash/services/session_service.py
import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from musicdash.config.settings import SESSION_IDLE_TIMEOUT_SECONDS, SESSION_MAX_AGE, SESSION_SWEEP_SECONDS
from musicdash.models.token_model import TokenState
from musicdash.services.chat_orchestrator import ChatOrchestrator
from musicdash.services.completion_client import CompletionClient
from musicdash.services.playback_poller import PlaybackPoller
from musicdash.services.rate_limit import RateLimitState
from musicdash.services.scheduler import Scheduler, ThreadingScheduler, epoch_ms
from musicdash.services.spotify_client import SpotifyApiClient
from musicdash.services.spotify_token_service import TokenStore, request_token_refresh

logger = logging.getLogger(__name__)


@dataclass
class DashboardSession:
    """Everything one signed-in browser needs; lives only in memory."""

    session_id: str
    token_store: TokenStore
    spotify: SpotifyApiClient
    poller: PlaybackPoller
    chat: ChatOrchestrator
    created_at_ms: int = 0
    last_seen_ms: int = 0


class SessionRegistry:
    """
    In-memory sessions keyed by the id carried in the session cookie.
    Nothing is persisted: a restart signs everybody out.

    A session ends once it is older than the cookie lifetime or has not been
    looked up for `idle_timeout_seconds`. Expired sessions are dropped on
    lookup and by a periodic sweep that only runs while sessions exist, so a
    closed browser tab does not keep its poller hitting Spotify.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        http_factory: Callable[[], requests.Session] = requests.Session,
        completion_factory: Callable[[], CompletionClient] = CompletionClient,
        refresher: Callable[[str], Dict] = request_token_refresh,
        start_polling: bool = True,
        clock: Callable[[], int] = epoch_ms,
        max_age_seconds: float = SESSION_MAX_AGE,
        idle_timeout_seconds: float = SESSION_IDLE_TIMEOUT_SECONDS,
        sweep_interval_seconds: float = SESSION_SWEEP_SECONDS,
    ):
        self.scheduler = scheduler or ThreadingScheduler()
        self.http_factory = http_factory
        self.completion_factory = completion_factory
        self.refresher = refresher
        self.start_polling = start_polling
        self.max_age_ms = int(max_age_seconds * 1000)
        self.idle_timeout_ms = int(idle_timeout_seconds * 1000)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._sessions: Dict[str, DashboardSession] = {}
        self._lock = threading.Lock()
        self._sweep_timer = None

    def create(self, token_state: TokenState) -> DashboardSession:
        token_store = TokenStore(token_state, refresher=self.refresher)
        spotify = SpotifyApiClient(
            token_store,
            rate_limit=RateLimitState(),
            http=self.http_factory(),
            scheduler=self.scheduler,
        )
        now = self._clock()
        session = DashboardSession(
            session_id=secrets.token_urlsafe(32),
            token_store=token_store,
            spotify=spotify,
            poller=PlaybackPoller(spotify, scheduler=self.scheduler),
            chat=ChatOrchestrator(self.completion_factory(), spotify),
            created_at_ms=now,
            last_seen_ms=now,
        )
        self.sweep()
        with self._lock:
            self._sessions[session.session_id] = session
            self._ensure_sweeping()

        logger.info(f"Dashboard session created ({len(self._sessions)} active)")
        if self.start_polling:
            session.poller.start()
        return session

    def get(self, session_id: Optional[str]) -> Optional[DashboardSession]:
        if not session_id:
            return None
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if not self._expired(session, now):
                session.last_seen_ms = now
                return session
            del self._sessions[session_id]
        session.poller.stop()
        logger.info("Dashboard session expired on lookup")
        return None

    def end(self, session_id: Optional[str]) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None) if session_id else None
        if session is None:
            return False
        session.poller.stop()
        logger.info("Dashboard session ended")
        return True

    def sweep(self) -> int:
        """Drop every expired session; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired: List[DashboardSession] = [s for s in self._sessions.values() if self._expired(s, now)]
            for session in expired:
                del self._sessions[session.session_id]
        for session in expired:
            session.poller.stop()
        if expired:
            logger.info(f"Expired {len(expired)} dashboard session(s), {len(self._sessions)} active")
        return len(expired)

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            timer, self._sweep_timer = self._sweep_timer, None
        if timer is not None:
            timer.cancel()
        for session in sessions:
            session.poller.stop()

    def _expired(self, session: DashboardSession, now: int) -> bool:
        return (
            now - session.created_at_ms >= self.max_age_ms
            or now - session.last_seen_ms >= self.idle_timeout_ms
        )

    def _ensure_sweeping(self) -> None:
        # caller holds the lock
        if self._sweep_timer is None and self._sessions:
            self._sweep_timer = self.scheduler.call_later(self.sweep_interval_seconds, self._on_sweep_timer)

    def _on_sweep_timer(self) -> None:
        with self._lock:
            self._sweep_timer = None
        self.sweep()
        with self._lock:
            self._ensure_sweeping()

    def __len__(self) -> int:
        return len(self._sessions)
