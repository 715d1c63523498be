# tests/test_chat_orchestrator.py
"""Chat turns: completion, suggestion resolution, failure handling"""

from itertools import count
from unittest.mock import Mock

import pytest

from musicdash.models.chat_models import ChatRole
from musicdash.models.playback_models import Track
from musicdash.services.chat_orchestrator import APOLOGY_MESSAGE, ChatOrchestrator
from musicdash.services.completion_client import CompletionClient
from musicdash.services.errors import CompletionError
from musicdash.services.spotify_client import ApiOutcome, ApiResult, SpotifyApiClient

CREEP = Track(id="creep1", title="Creep", artist="Radiohead")
LUCKY = Track(id="lucky1", title="Lucky", artist="Radiohead")


@pytest.fixture
def completion():
    client = Mock(spec=CompletionClient)
    client.complete.return_value = "You might like 'Creep' by Radiohead"
    return client


@pytest.fixture
def spotify():
    client = Mock(spec=SpotifyApiClient)
    client.search_tracks.return_value = ApiResult(ApiOutcome.OK, data=[CREEP])
    client.get_recommendations.return_value = ApiResult(ApiOutcome.OK, data=[LUCKY])
    return client


@pytest.fixture
def chat(completion, spotify):
    ids = count(1)
    return ChatOrchestrator(completion, spotify, id_factory=lambda: f"m{next(ids)}")


class TestSend:

    def test_reply_with_suggestions(self, chat, spotify):
        message = chat.send("I like sad rock songs")

        assert message.role is ChatRole.ASSISTANT
        assert message.content == "You might like 'Creep' by Radiohead"
        assert message.suggestions == [LUCKY]
        spotify.search_tracks.assert_called_once_with("Creep by Radiohead")
        spotify.get_recommendations.assert_called_once_with(["creep1"])

    def test_transcript_is_appended(self, chat):
        chat.send("hi")
        messages = chat.messages
        assert [m.role for m in messages] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert [m.id for m in messages] == ["m1", "m2"]

    def test_full_transcript_goes_to_completion(self, chat, completion):
        chat.send("first")
        chat.send("second")

        transcript = completion.complete.call_args.args[0]
        assert [m.content for m in transcript] == [
            "first",
            "You might like 'Creep' by Radiohead",
            "second",
        ]

    def test_completion_failure_appends_apology(self, chat, completion, spotify):
        completion.complete.side_effect = CompletionError(500, "Gemini API key is not configured")

        message = chat.send("hello")

        assert message.content == APOLOGY_MESSAGE
        assert message.suggestions == []
        assert len(chat.messages) == 2
        spotify.search_tracks.assert_not_called()

    def test_no_candidates_means_no_lookups(self, chat, completion, spotify):
        completion.complete.return_value = "what kind of music do you like?"
        message = chat.send("hello")
        assert message.suggestions == []
        spotify.search_tracks.assert_not_called()
        spotify.get_recommendations.assert_not_called()


class TestSuggestions:

    def test_failing_searches_still_complete(self, chat, spotify):
        spotify.search_tracks.side_effect = RuntimeError("network down")

        message = chat.send("recommend something")

        assert message.content == "You might like 'Creep' by Radiohead"
        assert message.suggestions == []
        spotify.get_recommendations.assert_not_called()

    def test_failed_search_result_is_skipped(self, chat, completion, spotify):
        completion.complete.return_value = 'Try "Creep" and "Lucky"'
        spotify.search_tracks.side_effect = [
            ApiResult(ApiOutcome.API_ERROR, status=500, message="boom"),
            ApiResult(ApiOutcome.OK, data=[LUCKY]),
        ]
        spotify.get_recommendations.return_value = ApiResult(ApiOutcome.OK, data=[CREEP])

        message = chat.send("more")

        spotify.get_recommendations.assert_called_once_with(["lucky1"])
        assert message.suggestions == [CREEP]

    def test_seeds_are_deduplicated_and_capped(self, chat, completion, spotify):
        completion.complete.return_value = 'Try "One", "Two", "Three", "Four", "Five", "Six" and "Seven"'
        tracks = [Track(id=f"id{i}", title=f"T{i}", artist="A") for i in range(6)]
        # "Two" resolves to the same track as "One"
        spotify.search_tracks.side_effect = [ApiResult(ApiOutcome.OK, data=[t]) for t in [tracks[0], *tracks]]

        chat.send("lots")

        seeds = spotify.get_recommendations.call_args.args[0]
        assert seeds == ["id0", "id1", "id2", "id3", "id4"]

    def test_recommendation_failure_falls_back_to_search_hits(self, chat, spotify):
        spotify.get_recommendations.return_value = ApiResult(ApiOutcome.NOT_FOUND, status=404)
        assert chat.send("x").suggestions == [CREEP]

    def test_empty_recommendations_fall_back_to_search_hits(self, chat, spotify):
        spotify.get_recommendations.return_value = ApiResult(ApiOutcome.OK, data=[])
        assert chat.send("x").suggestions == [CREEP]

    def test_recommendation_exception_never_hides_reply(self, chat, spotify):
        spotify.get_recommendations.side_effect = RuntimeError("boom")
        message = chat.send("x")
        assert message.content == "You might like 'Creep' by Radiohead"
        assert message.suggestions == []

    def test_no_search_hits(self, chat, spotify):
        spotify.search_tracks.return_value = ApiResult(ApiOutcome.OK, data=[])
        assert chat.send("x").suggestions == []
        spotify.get_recommendations.assert_not_called()
