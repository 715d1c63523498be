# tests/test_playback_poller.py
"""Playback poller: state machine, local progress, optimistic controls, teardown"""

from unittest.mock import Mock

import pytest

from musicdash.models.playback_models import PollerState
from musicdash.services.playback_poller import (
    PREMIUM_REQUIRED_MESSAGE,
    RATE_LIMIT_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    PlaybackPoller,
)
from musicdash.services.spotify_client import ApiOutcome, ApiResult, SpotifyApiClient
from tests.conftest import FakeResponse, playback_payload


def ok(payload):
    return ApiResult(ApiOutcome.OK, data=payload, status=200)


NO_CONTENT = ApiResult(ApiOutcome.NO_CONTENT, status=204)


@pytest.fixture
def spotify():
    client = Mock(spec=SpotifyApiClient)
    client.get_current_playback.return_value = ok(playback_payload())
    for command in ("play", "pause", "next_track", "previous_track", "seek"):
        getattr(client, command).return_value = NO_CONTENT
    return client


@pytest.fixture
def poller(spotify, scheduler, clock):
    return PlaybackPoller(spotify, scheduler=scheduler, clock=clock, poll_interval_seconds=10, reconcile_delay_ms=500)


class TestPolling:

    def test_start_polls_immediately(self, poller, spotify):
        poller.start()
        view = poller.view()
        assert view.state is PollerState.PLAYING
        assert view.track.title == "Creep"
        assert view.track.artist == "Radiohead"
        spotify.get_current_playback.assert_called_once()

    def test_polls_every_interval(self, poller, spotify, scheduler):
        poller.start()
        scheduler.advance(30)
        assert spotify.get_current_playback.call_count == 4

    def test_no_content_means_no_active_session(self, poller, spotify):
        spotify.get_current_playback.return_value = NO_CONTENT
        poller.start()
        view = poller.view()
        assert view.state is PollerState.NO_ACTIVE_SESSION
        assert view.track is None
        assert view.error is None

    def test_payload_without_item_means_no_active_session(self, poller, spotify):
        spotify.get_current_playback.return_value = ok({"is_playing": False, "item": None})
        poller.start()
        assert poller.view().state is PollerState.NO_ACTIVE_SESSION

    def test_paused_snapshot(self, poller, spotify):
        spotify.get_current_playback.return_value = ok(playback_payload(is_playing=False))
        poller.start()
        assert poller.view().state is PollerState.PAUSED

    def test_skipped_poll_keeps_state(self, poller, spotify):
        poller.start()
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.SKIPPED)
        poller.poll()
        assert poller.view().state is PollerState.PLAYING

    def test_premium_error(self, poller, spotify):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.PREMIUM_REQUIRED, status=403)
        poller.start()
        view = poller.view()
        assert view.state is PollerState.ERROR
        assert view.error == PREMIUM_REQUIRED_MESSAGE

    def test_needs_reauth_flag(self, poller, spotify):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.NEEDS_REAUTH)
        poller.start()
        view = poller.view()
        assert view.needs_reauth
        assert view.error == SESSION_EXPIRED_MESSAGE

    def test_rate_limit_countdown_and_retry(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ApiResult(
            ApiOutcome.RATE_LIMITED, status=429, retry_after_seconds=5
        )
        poller.start()

        view = poller.view()
        assert view.state is PollerState.ERROR
        assert view.error == RATE_LIMIT_MESSAGE
        assert view.rate_limited
        assert view.retry_in_seconds == 5

        scheduler.advance(2)
        assert poller.view().retry_in_seconds == 3

        # the client delivers its scheduled retry here
        on_retry = spotify.get_current_playback.call_args.kwargs["on_retry"]
        on_retry(ok(playback_payload()))

        view = poller.view()
        assert view.state is PollerState.PLAYING
        assert view.error is None
        assert not view.rate_limited

    def test_clear_error(self, poller, spotify):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.API_ERROR, status=500, message="boom")
        poller.start()
        assert poller.view().error == "boom"
        poller.clear_error()
        assert poller.view().error is None


class TestProgress:

    def test_progress_advances_while_playing(self, poller, scheduler):
        poller.start()
        scheduler.advance(3)
        assert poller.view().progress_ms == 4000

    def test_progress_frozen_while_paused(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(is_playing=False, progress_ms=5000))
        poller.start()
        scheduler.advance(5)
        assert poller.view().progress_ms == 5000

    def test_progress_never_exceeds_duration(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=4000, duration_ms=5000))
        poller.start()
        for _ in range(8):
            scheduler.advance(1)
            assert poller.view().progress_ms <= 5000
        assert poller.view().progress_ms == 5000

    def test_lagging_poll_does_not_move_progress_back(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=10000))
        poller.start()

        # provider reports an older position at the next poll
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=5000))
        seen = []
        for _ in range(10):
            scheduler.advance(1)
            seen.append(poller.view().progress_ms)

        assert seen == sorted(seen)
        assert seen[-1] == 20000

    def test_track_change_resets_progress(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=90000))
        poller.start()
        spotify.get_current_playback.return_value = ok(playback_payload(track_id="track2", progress_ms=0, name="Lucky"))

        scheduler.advance(10)

        view = poller.view()
        assert view.track.track_id == "track2"
        assert view.progress_ms == 0

    def test_restart_of_same_track_resets_progress(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=190000))
        poller.start()
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=2000))

        scheduler.advance(10)

        assert poller.view().progress_ms == 2000


class TestControls:

    def test_play_pause_is_optimistic(self, poller, spotify):
        poller.start()
        result = poller.play_pause()

        assert result.ok
        spotify.pause.assert_called_once()
        view = poller.view()
        assert view.track.is_playing is False
        assert view.state is PollerState.PAUSED

    def test_play_pause_reconciles(self, poller, spotify, scheduler):
        poller.start()
        spotify.get_current_playback.reset_mock()
        spotify.get_current_playback.return_value = ok(playback_payload(is_playing=False))

        poller.play_pause()
        scheduler.advance(0.5)

        spotify.get_current_playback.assert_called_once()
        assert spotify.get_current_playback.call_args.kwargs["force"] is True

    def test_play_resumes_paused_track(self, poller, spotify):
        spotify.get_current_playback.return_value = ok(playback_payload(is_playing=False))
        poller.start()
        poller.play_pause()
        spotify.play.assert_called_once()
        assert poller.view().state is PollerState.PLAYING

    def test_play_pause_without_snapshot_is_noop(self, poller, spotify):
        spotify.get_current_playback.return_value = NO_CONTENT
        poller.start()
        result = poller.play_pause()
        assert result.outcome is ApiOutcome.SKIPPED
        spotify.play.assert_not_called()
        spotify.pause.assert_not_called()

    def test_premium_required_on_control(self, poller, spotify, scheduler):
        poller.start()
        spotify.pause.return_value = ApiResult(ApiOutcome.PREMIUM_REQUIRED, status=403)

        result = poller.play_pause()

        assert result.outcome is ApiOutcome.PREMIUM_REQUIRED
        assert poller.view().error == PREMIUM_REQUIRED_MESSAGE
        # snapshot is not toggled on failure
        assert poller.view().track.is_playing is True

    def test_skip_next_reconciles(self, poller, spotify, scheduler):
        poller.start()
        spotify.get_current_playback.return_value = ok(playback_payload(track_id="track2", progress_ms=0, name="Lucky"))

        poller.skip_next()
        scheduler.advance(0.5)

        spotify.next_track.assert_called_once()
        assert poller.view().track.title == "Lucky"

    def test_skip_previous(self, poller, spotify):
        poller.start()
        poller.skip_previous()
        spotify.previous_track.assert_called_once()

    def test_seek_moves_progress_backwards(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=100000))
        poller.start()

        poller.seek_to_position(30000)

        spotify.seek.assert_called_once_with(30000)
        assert poller.view().progress_ms == 30000

        spotify.get_current_playback.return_value = ok(playback_payload(progress_ms=30200))
        scheduler.advance(0.5)
        assert poller.view().progress_ms == 30200

    def test_seek_is_clamped_to_duration(self, poller, spotify):
        poller.start()
        poller.seek_to_position(999999)
        spotify.seek.assert_called_once_with(200000)


class TestGesturesAndTeardown:

    def test_drag_skips_passive_polls(self, poller, spotify, scheduler):
        poller.start()
        poller.begin_drag()
        scheduler.advance(20)
        assert spotify.get_current_playback.call_count == 1

        poller.poll(force=True)
        assert spotify.get_current_playback.call_count == 2

        poller.end_drag()
        scheduler.advance(10)
        assert spotify.get_current_playback.call_count == 3

    def test_stop_cancels_every_timer(self, poller, spotify, scheduler):
        poller.start()
        poller.play_pause()
        assert scheduler.pending

        poller.stop()

        assert scheduler.pending == []
        calls = spotify.get_current_playback.call_count
        scheduler.advance(60)
        assert spotify.get_current_playback.call_count == calls

    def test_no_state_change_after_stop(self, poller, spotify):
        poller.start()
        on_retry = spotify.get_current_playback.call_args.kwargs["on_retry"]
        poller.stop()

        on_retry(NO_CONTENT)

        assert poller.view().state is PollerState.PLAYING
        assert not poller.mounted


class TestRateLimitRetryWithRealClient:

    @pytest.fixture
    def live_poller(self, client, scheduler, clock):
        return PlaybackPoller(client, scheduler=scheduler, clock=clock, poll_interval_seconds=10, reconcile_delay_ms=500)

    def test_retry_fires_while_mounted(self, live_poller, http, scheduler):
        http.request.side_effect = [
            FakeResponse(429, headers={"Retry-After": "3"}),
            FakeResponse(200, playback_payload()),
        ]
        live_poller.start()
        assert live_poller.view().state is PollerState.ERROR

        scheduler.advance(3)

        assert http.request.call_count == 2
        assert live_poller.view().state is PollerState.PLAYING

    def test_stop_cancels_pending_retry(self, live_poller, http, scheduler):
        http.request.return_value = FakeResponse(429, headers={"Retry-After": "3"})
        live_poller.start()
        assert http.request.call_count == 1

        live_poller.stop()

        assert scheduler.pending == []
        scheduler.advance(5)
        assert http.request.call_count == 1


class TestErrorBanner:

    def test_plain_error_clears_after_five_seconds(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.PREMIUM_REQUIRED, status=403)
        poller.start()

        scheduler.advance(4)
        assert poller.view().error == PREMIUM_REQUIRED_MESSAGE

        scheduler.advance(1)
        view = poller.view()
        assert view.error is None
        assert view.state is PollerState.NO_ACTIVE_SESSION

    def test_newer_error_restarts_countdown(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.API_ERROR, status=500, message="first")
        poller.start()
        scheduler.advance(3)
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.API_ERROR, status=500, message="second")
        poller.poll(force=True)

        scheduler.advance(2)
        assert poller.view().error == "second"

        scheduler.advance(3)
        assert poller.view().error is None

    def test_rate_limit_and_reauth_banners_stay(self, poller, spotify, scheduler):
        spotify.get_current_playback.return_value = ApiResult(ApiOutcome.NEEDS_REAUTH)
        poller.start()
        scheduler.advance(9)
        assert poller.view().error == SESSION_EXPIRED_MESSAGE
