# musicdash/models/token_model.py
from pydantic import BaseModel

REFRESH_ERROR = "RefreshAccessTokenError"


class TokenState(BaseModel):
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at_ms: int = 0      # Unix timestamp (ms)
    scope: str | None = None
    last_error: str | None = None

    @property
    def needs_reauth(self) -> bool:
        return self.last_error == REFRESH_ERROR
