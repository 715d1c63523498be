# musicdash/services/rate_limit.py
import threading
from typing import Callable, Optional

from musicdash.config.settings import MAX_FETCH_INTERVAL_MS, MIN_FETCH_INTERVAL_MS
from musicdash.services.scheduler import monotonic_ms

MAX_BACKOFF_EXPONENT = 5


class RateLimitState:
    """
    Interval gate + 429 backoff for one Spotify client.

    There is a single authoritative `min_interval_ms`:
    - passive calls inside the window are dropped
    - forced calls always pass, and move the window
    - a 429 grows the interval, any other response resets it
    """

    def __init__(
        self,
        base_interval_ms: int = MIN_FETCH_INTERVAL_MS,
        max_interval_ms: int = MAX_FETCH_INTERVAL_MS,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.base_interval_ms = base_interval_ms
        self.max_interval_ms = max_interval_ms
        self.consecutive_errors = 0
        self.min_interval_ms = base_interval_ms
        self.last_fetch_ms: Optional[int] = None
        self._clock = clock
        self._lock = threading.Lock()

    def try_acquire(self, force: bool = False) -> bool:
        with self._lock:
            now = self._clock()
            if (
                not force
                and self.last_fetch_ms is not None
                and now - self.last_fetch_ms < self.min_interval_ms
            ):
                return False
            self.last_fetch_ms = now
            return True

    def record_rate_limited(self) -> int:
        """Register a 429 and return the new minimum interval (ms)."""
        with self._lock:
            self.consecutive_errors += 1
            exponent = min(MAX_BACKOFF_EXPONENT, self.consecutive_errors)
            self.min_interval_ms = min(
                self.max_interval_ms, self.base_interval_ms * 2 ** exponent
            )
            return self.min_interval_ms

    def record_response(self) -> None:
        with self._lock:
            self.consecutive_errors = 0
            self.min_interval_ms = self.base_interval_ms
