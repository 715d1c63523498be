# musicdash/services/completion_client.py
import logging
from typing import Iterable, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from musicdash.config.settings import GEMINI_API_KEY, GEMINI_MODEL
from musicdash.models.chat_models import ChatRole, RelayMessage
from musicdash.services.errors import CompletionError

logger = logging.getLogger(__name__)

# =====================================
# System instruction
# =====================================
SYSTEM_INSTRUCTION = """
You are a music recommendation AI assistant. You help users discover new music based on their tastes.
When users mention songs or artists, try to understand their music preferences and suggest similar artists or songs.
Keep responses conversational but focused on music discovery.
When suggesting songs, format them clearly with artist names, for example: "Song Title" by Artist.
Focus on understanding the user's taste in terms of genres, moods, and musical elements.
""".strip()

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 500


def to_gemini_contents(messages: Iterable[RelayMessage]) -> List[dict]:
    """Role-tagged transcript → Gemini `contents` (assistant turns are "model")."""
    return [
        {
            "role": "model" if m.role == ChatRole.ASSISTANT else "user",
            "parts": [m.content],
        }
        for m in messages
    ]


class CompletionClient:
    """
    Gemini chat completion: fixed system instruction + transcript → one reply.

    The model is created lazily so the app can boot without an API key;
    calls then fail with CompletionError(500).
    """

    def __init__(self, api_key: Optional[str] = GEMINI_API_KEY, model_name: str = GEMINI_MODEL):
        self.api_key = api_key
        self.model_name = model_name
        self._model = None

    def _get_model(self):
        if not self.api_key:
            logger.error("GEMINI_API_KEY is not set")
            raise CompletionError(500, "Gemini API key is not configured")

        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                self.model_name,
                system_instruction=SYSTEM_INSTRUCTION,
                generation_config=genai.GenerationConfig(
                    temperature=TEMPERATURE,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
            )
        return self._model

    def complete(self, messages: List[RelayMessage]) -> str:
        if not messages:
            raise CompletionError(400, "messages must not be empty")

        model = self._get_model()
        try:
            response = model.generate_content(to_gemini_contents(messages))
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Gemini API error: status={e.code} message={e.message}")
            raise CompletionError(e.code or 500, f"Gemini API error: {e.message}") from e
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Gemini API error: {e}")
            raise CompletionError(502, f"Gemini API error: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # Blocked or empty candidates: .text raises instead of returning ""
            logger.warning(f"Gemini returned no text: {e}")
            raise CompletionError(502, "Failed to get AI response: empty reply") from e

        return text.strip()
