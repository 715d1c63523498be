# musicdash/services/chat_orchestrator.py
import logging
import threading
import uuid
from typing import Callable, List, Tuple

from musicdash.models.chat_models import ChatMessage, ChatRole, RelayMessage
from musicdash.models.playback_models import Track
from musicdash.services.completion_client import CompletionClient
from musicdash.services.spotify_client import SpotifyApiClient
from musicdash.services.track_extraction import extract_candidates

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, I encountered an error while processing your request. Please try again."
)
MAX_SEEDS = 5


def _new_message_id() -> str:
    return uuid.uuid4().hex


class ChatOrchestrator:
    """
    One chat transcript per dashboard session.

    send():
    1. append the user message
    2. post the whole transcript to the completion provider
    3. pull song candidates out of the reply, search each one
    4. seed recommendations with up to 5 found tracks
    5. append the assistant message with whatever suggestions resolved
    """

    def __init__(
        self,
        completion: CompletionClient,
        spotify: SpotifyApiClient,
        id_factory: Callable[[], str] = _new_message_id,
    ):
        self.completion = completion
        self.spotify = spotify
        self._id_factory = id_factory
        self._messages: List[ChatMessage] = []
        self._lock = threading.Lock()

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    def _append(self, role: ChatRole, content: str, suggestions: List[Track] = None) -> ChatMessage:
        message = ChatMessage(
            id=self._id_factory(),
            role=role,
            content=content,
            suggestions=suggestions or [],
        )
        with self._lock:
            self._messages.append(message)
        return message

    def send(self, text: str) -> ChatMessage:
        """Run one chat turn and return the assistant message it appended."""
        self._append(ChatRole.USER, text.strip())
        transcript = [RelayMessage(role=m.role, content=m.content) for m in self.messages]

        try:
            reply = self.completion.complete(transcript)
        except Exception as e:
            logger.error(f"Error processing message: {e}")
            return self._append(ChatRole.ASSISTANT, APOLOGY_MESSAGE)

        return self._append(ChatRole.ASSISTANT, reply, self.resolve_suggestions(reply))

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def resolve_suggestions(self, reply: str) -> List[Track]:
        """Never raises: a failed lookup means fewer (or no) suggestions."""
        try:
            found = self._search_candidates(extract_candidates(reply))
            if not found:
                return []

            seeds = [track.id for track in found[:MAX_SEEDS]]
            result = self.spotify.get_recommendations(seeds)
            if result.ok and result.data:
                return list(result.data)

            logger.info(
                f"No recommendations for seeds {seeds} ({result.outcome.value}); suggesting search hits"
            )
            return found[:MAX_SEEDS]
        except Exception as e:
            logger.error(f"Error resolving suggestions: {e}")
            return []

    def _search_candidates(self, candidates: List[str]) -> List[Track]:
        found: List[Track] = []
        seen_ids = set()

        for candidate in candidates:
            try:
                result = self.spotify.search_tracks(candidate)
            except Exception as e:
                logger.warning(f"Search failed for candidate {candidate!r}: {e}")
                continue
            if not result.ok:
                logger.warning(f"Search failed for candidate {candidate!r}: {result.describe()}")
                continue
            if not result.data:
                continue

            # Best hit per candidate keeps the seeds spread across the reply
            track = result.data[0]
            if track.id not in seen_ids:
                seen_ids.add(track.id)
                found.append(track)

        return found
