"""Test configuration and fixtures"""

import json
from unittest.mock import Mock

import pytest

from musicdash.models.token_model import TokenState
from musicdash.services.rate_limit import RateLimitState
from musicdash.services.spotify_client import SpotifyApiClient
from musicdash.services.spotify_token_service import TokenStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += int(ms)


class ManualTimer:
    def __init__(self, due_ms, fn):
        self.due_ms = due_ms
        self.fn = fn
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers fire only from advance(), in due order"""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []

    def call_later(self, delay_seconds, fn):
        timer = ManualTimer(self.clock.now + int(delay_seconds * 1000), fn)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds):
        target = self.clock.now + int(seconds * 1000)
        while True:
            due = [t for t in self.pending if t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_ms)
            self.clock.now = max(self.clock.now, timer.due_ms)
            timer.fired = True
            timer.fn()
        self.clock.now = target


class FakeResponse:
    """The slice of requests.Response the services read"""

    def __init__(self, status_code=200, json_data=None, headers=None, text=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._json = json_data
        if json_data is not None:
            self.text = json.dumps(json_data)
        else:
            self.text = text or ""
        self.content = self.text.encode()

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


def playback_payload(track_id="track1", progress_ms=1000, duration_ms=200000, is_playing=True, name="Creep"):
    return {
        "is_playing": is_playing,
        "progress_ms": progress_ms,
        "item": {
            "id": track_id,
            "name": name,
            "uri": f"spotify:track:{track_id}",
            "duration_ms": duration_ms,
            "artists": [{"name": "Radiohead"}],
            "album": {"name": "Pablo Honey", "images": [{"url": "https://i.scdn.co/image/abc"}]},
        },
    }


def track_item(track_id, name="Creep", artist="Radiohead"):
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": artist}],
        "album": {"name": "Pablo Honey", "images": []},
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def refresher():
    """Token endpoint stand-in; returns a rotated access token"""
    return Mock(return_value={"access_token": "token-2", "expires_in": 3600})


@pytest.fixture
def token_store(clock, refresher):
    state = TokenState(
        access_token="token-1",
        refresh_token="refresh-1",
        expires_at_ms=clock.now + 3600 * 1000,
    )
    return TokenStore(state, refresher=refresher, clock=clock)


@pytest.fixture
def http():
    """Mock requests.Session; tests set http.request.side_effect / return_value"""
    session = Mock()
    session.request.return_value = FakeResponse(204)
    return session


@pytest.fixture
def rate_limit(clock):
    return RateLimitState(clock=clock)


@pytest.fixture
def client(token_store, rate_limit, http, scheduler):
    return SpotifyApiClient(token_store, rate_limit=rate_limit, http=http, scheduler=scheduler)
