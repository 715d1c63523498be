# musicdash/services/errors.py


class NeedsReauthError(RuntimeError):
    """Token refresh failed; the user has to sign in with Spotify again."""


class SpotifyOAuthError(RuntimeError):
    """Raised when the Spotify accounts service rejects a token request."""

    def __init__(self, message: str, status: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status = status
        self.payload = payload or {}


class CompletionError(RuntimeError):
    """Raised when the completion provider cannot produce a reply.

    `status` is the HTTP status the chat relay should answer with.
    """

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message
