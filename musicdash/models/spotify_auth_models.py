from typing import Optional

from pydantic import BaseModel


# /api/auth/session
class SessionResponse(BaseModel):
    authenticated: bool
    error: Optional[str] = None      # "RefreshAccessTokenError" → sign in again
    expires_at_ms: Optional[int] = None
