# musicdash/services/playback_poller.py
import logging
import math
import threading
from typing import Callable, Optional

from musicdash.config.settings import POLL_INTERVAL_SECONDS, RECONCILE_DELAY_MS
from musicdash.models.playback_models import PlaybackSnapshot, PlayerView, PollerState
from musicdash.services.scheduler import Scheduler, ThreadingScheduler, monotonic_ms
from musicdash.services.spotify_client import ApiOutcome, ApiResult, SpotifyApiClient
from musicdash.services.spotify_now_playing import parse_playback

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0
# Plain error banners go away on their own; rate-limit and sign-in ones stay
ERROR_DISPLAY_SECONDS = 5.0
RATE_LIMIT_MESSAGE = "Too many requests to Spotify API. Please wait a moment before retrying."
PREMIUM_REQUIRED_MESSAGE = (
    "Premium required or no active device found. Please open Spotify on a device first."
)
SESSION_EXPIRED_MESSAGE = "Session expired. Please refresh the page or sign in again."

_REAUTH_OUTCOMES = (ApiOutcome.UNAUTHENTICATED, ApiOutcome.UNAUTHORIZED, ApiOutcome.NEEDS_REAUTH)


class PlaybackPoller:
    """
    Polls GET /me/player for one dashboard session and drives the player.

    IDLE → POLLING → {PLAYING, PAUSED, NO_ACTIVE_SESSION, ERROR} → POLLING ...

    Between polls the displayed position is extrapolated from wall-clock
    time while playing. Displayed progress never passes the track duration
    and only moves backwards on a seek or a track change.
    """

    def __init__(
        self,
        client: SpotifyApiClient,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = monotonic_ms,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        reconcile_delay_ms: int = RECONCILE_DELAY_MS,
    ):
        self.client = client
        self.scheduler = scheduler or ThreadingScheduler()
        self.poll_interval_seconds = poll_interval_seconds
        self.reconcile_delay_ms = reconcile_delay_ms
        self._clock = clock
        self._lock = threading.RLock()

        self._state = PollerState.IDLE
        self._snapshot: Optional[PlaybackSnapshot] = None
        self._progress_ms = 0
        self._progress_at_ms = 0
        self._seek_pending = False
        self._error: Optional[str] = None
        self._error_generation = 0
        self._needs_reauth = False
        self._rate_limited_until_ms: Optional[int] = None
        self._dragging = False

        self._mounted = False
        self._poll_timer = None
        self._tick_timer = None
        self._pending_timers = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._mounted:
                return
            self._mounted = True
        self.poll()
        self._schedule_next_poll()

    def stop(self) -> None:
        """Teardown: nothing touches this poller's state afterwards."""
        with self._lock:
            self._mounted = False
            timers = [self._poll_timer, self._tick_timer, *self._pending_timers]
            self._poll_timer = None
            self._tick_timer = None
            self._pending_timers.clear()
        for timer in timers:
            if timer is not None:
                timer.cancel()

    @property
    def mounted(self) -> bool:
        return self._mounted

    def _schedule_next_poll(self) -> None:
        with self._lock:
            if not self._mounted:
                return
            self._poll_timer = self.scheduler.call_later(self.poll_interval_seconds, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        if not self._mounted:
            return
        self.poll()
        self._schedule_next_poll()

    def _call_later(self, delay_seconds: float, fn: Callable[[], None]) -> None:
        holder = {}

        def run():
            with self._lock:
                self._pending_timers.discard(holder.get("timer"))
                if not self._mounted:
                    return
            fn()

        with self._lock:
            if not self._mounted:
                return
            holder["timer"] = self.scheduler.call_later(delay_seconds, run)
            self._pending_timers.add(holder["timer"])

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def poll(self, force: bool = False) -> None:
        with self._lock:
            if not self._mounted:
                return
            if self._dragging and not force:
                return
            previous = self._state
            self._state = PollerState.POLLING

        result = self.client.get_current_playback(
            force=force, on_retry=self._apply_result, schedule=self._call_later
        )

        with self._lock:
            if result.outcome is ApiOutcome.SKIPPED and self._state is PollerState.POLLING:
                self._state = previous
                return
        self._apply_result(result)

    def _apply_result(self, result: ApiResult) -> None:
        with self._lock:
            if not self._mounted or result.outcome is ApiOutcome.SKIPPED:
                return

            if result.outcome in (ApiOutcome.OK, ApiOutcome.NO_CONTENT):
                snapshot = parse_playback(result.data) if result.outcome is ApiOutcome.OK else None
                self._error = None
                self._needs_reauth = False
                self._rate_limited_until_ms = None
                if snapshot is None:
                    self._clear_snapshot()
                    self._state = PollerState.NO_ACTIVE_SESSION
                else:
                    self._replace_snapshot(snapshot)
                    self._state = PollerState.PLAYING if snapshot.is_playing else PollerState.PAUSED
                return

            logger.error(f"Error fetching current playback: {result.outcome.value} {result.message or ''}")
            self._state = PollerState.ERROR
            self._record_failure(result)

    def _record_failure(self, result: ApiResult, fallback: Optional[str] = None) -> None:
        self._error_generation += 1
        if result.outcome is ApiOutcome.RATE_LIMITED:
            self._error = RATE_LIMIT_MESSAGE
            wait_ms = int((result.retry_after_seconds or 0) * 1000)
            self._rate_limited_until_ms = self._clock() + wait_ms
        elif result.outcome in _REAUTH_OUTCOMES:
            self._needs_reauth = True
            self._error = SESSION_EXPIRED_MESSAGE
        elif result.outcome is ApiOutcome.PREMIUM_REQUIRED:
            self._error = PREMIUM_REQUIRED_MESSAGE
        elif result.outcome is ApiOutcome.API_ERROR and result.message:
            self._error = result.message
        else:
            self._error = fallback or result.describe()

        if result.outcome is not ApiOutcome.RATE_LIMITED and result.outcome not in _REAUTH_OUTCOMES:
            generation = self._error_generation
            self._call_later(ERROR_DISPLAY_SECONDS, lambda: self._expire_error(generation))

    def _expire_error(self, generation: int) -> None:
        with self._lock:
            # a newer failure restarted the countdown
            if generation == self._error_generation:
                self.clear_error()

    def _clear_snapshot(self) -> None:
        self._snapshot = None
        self._progress_ms = 0
        self._progress_at_ms = self._clock()
        self._seek_pending = False
        self._cancel_tick()

    def _replace_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        now = self._clock()
        shown = self._displayed_progress(now)
        previous = self._snapshot
        reported = min(snapshot.progress_ms, snapshot.duration_ms)

        track_changed = previous is None or previous.track_id != snapshot.track_id
        # Same track played again from the top (repeat-one, or restarted on the device)
        restarted = not track_changed and shown - reported > snapshot.duration_ms // 2

        if track_changed or restarted or self._seek_pending:
            progress = reported
        else:
            progress = max(shown, reported)

        self._snapshot = snapshot
        self._progress_ms = min(progress, snapshot.duration_ms)
        self._progress_at_ms = now
        self._seek_pending = False

        if snapshot.is_playing:
            self._ensure_ticking()
        else:
            self._cancel_tick()

    # ------------------------------------------------------------------
    # Local progress
    # ------------------------------------------------------------------

    def _displayed_progress(self, now: int) -> int:
        snapshot = self._snapshot
        if snapshot is None:
            return 0
        if not snapshot.is_playing:
            return min(self._progress_ms, snapshot.duration_ms)
        elapsed = max(0, now - self._progress_at_ms)
        return min(self._progress_ms + elapsed, snapshot.duration_ms)

    def _commit_progress(self) -> None:
        now = self._clock()
        self._progress_ms = self._displayed_progress(now)
        self._progress_at_ms = now

    def _ensure_ticking(self) -> None:
        if self._tick_timer is None and self._mounted:
            self._tick_timer = self.scheduler.call_later(TICK_SECONDS, self._tick)

    def _cancel_tick(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

    def _tick(self) -> None:
        with self._lock:
            self._tick_timer = None
            if not self._mounted or self._snapshot is None or not self._snapshot.is_playing:
                return
            if self._dragging:
                self._ensure_ticking()
                return
            self._commit_progress()
            if self._progress_ms < self._snapshot.duration_ms:
                self._ensure_ticking()

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def play_pause(self) -> ApiResult:
        with self._lock:
            snapshot = self._snapshot
            if not self._mounted or snapshot is None:
                return ApiResult(ApiOutcome.SKIPPED, message="Nothing is playing")

        result = self.client.pause() if snapshot.is_playing else self.client.play()
        if not self._handle_action_result(result, "Failed to control playback"):
            # Refresh to make sure the player shows what Spotify really does
            self._schedule_reconcile()
            return result

        with self._lock:
            if self._mounted and self._snapshot is not None:
                self._commit_progress()
                playing = not self._snapshot.is_playing
                self._snapshot = self._snapshot.model_copy(update={"is_playing": playing})
                self._state = PollerState.PLAYING if playing else PollerState.PAUSED
                if playing:
                    self._ensure_ticking()
                else:
                    self._cancel_tick()
        self._schedule_reconcile()
        return result

    def skip_next(self) -> ApiResult:
        return self._skip(self.client.next_track, "Failed to skip to next track")

    def skip_previous(self) -> ApiResult:
        return self._skip(self.client.previous_track, "Failed to skip to previous track")

    def _skip(self, command: Callable[[], ApiResult], failure: str) -> ApiResult:
        if not self._mounted:
            return ApiResult(ApiOutcome.SKIPPED)
        result = command()
        if self._handle_action_result(result, failure):
            # Wait a moment for Spotify to switch tracks
            self._schedule_reconcile()
        return result

    def seek_to_position(self, position_ms: int) -> ApiResult:
        with self._lock:
            if not self._mounted:
                return ApiResult(ApiOutcome.SKIPPED)
            snapshot = self._snapshot
        position_ms = max(0, int(position_ms))
        if snapshot is not None:
            position_ms = min(position_ms, snapshot.duration_ms)

        result = self.client.seek(position_ms)
        if not self._handle_action_result(result, "Failed to seek to position"):
            return result

        with self._lock:
            if self._mounted:
                self._progress_ms = position_ms
                self._progress_at_ms = self._clock()
                self._seek_pending = True
        self._schedule_reconcile()
        return result

    def _handle_action_result(self, result: ApiResult, failure: str) -> bool:
        if result.ok:
            return True
        logger.error(f"{failure}: {result.outcome.value} {result.message or ''}")
        with self._lock:
            if self._mounted:
                self._record_failure(result, fallback=failure)
        return False

    def _schedule_reconcile(self) -> None:
        self._call_later(self.reconcile_delay_ms / 1000, lambda: self.poll(force=True))

    # ------------------------------------------------------------------
    # Seek gestures
    # ------------------------------------------------------------------

    def begin_drag(self) -> None:
        with self._lock:
            self._dragging = True

    def end_drag(self) -> None:
        with self._lock:
            self._dragging = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def clear_error(self) -> None:
        with self._lock:
            self._error_generation += 1
            self._error = None
            self._rate_limited_until_ms = None
            if self._state is PollerState.ERROR:
                if self._snapshot is None:
                    self._state = PollerState.NO_ACTIVE_SESSION
                elif self._snapshot.is_playing:
                    self._state = PollerState.PLAYING
                else:
                    self._state = PollerState.PAUSED

    def view(self) -> PlayerView:
        with self._lock:
            now = self._clock()
            retry_in = None
            if self._rate_limited_until_ms is not None and self._rate_limited_until_ms > now:
                retry_in = math.ceil((self._rate_limited_until_ms - now) / 1000)
            return PlayerView(
                state=self._state,
                track=self._snapshot,
                progress_ms=self._displayed_progress(now),
                error=self._error,
                needs_reauth=self._needs_reauth,
                rate_limited=self._rate_limited_until_ms is not None,
                retry_in_seconds=retry_in,
            )
