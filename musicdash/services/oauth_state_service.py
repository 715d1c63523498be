# musicdash/services/oauth_state_service.py
import secrets
import threading
import time
from typing import Dict, Optional

STATE_TTL_SECONDS = 600  # sign-in must finish within 10 minutes

_states: Dict[str, Dict] = {}
_lock = threading.Lock()


def create_state(callback_url: str = "/dashboard") -> str:
    """
    One-shot state for a Spotify sign-in, remembering where to land afterwards.
    Expired entries are dropped on every write so the dict stays small.
    """
    state = secrets.token_urlsafe(24)
    now = int(time.time())
    with _lock:
        for key in [k for k, v in _states.items() if v["expires_at"] < now]:
            del _states[key]
        _states[state] = {
            "callback_url": callback_url,
            "created_at": now,
            "expires_at": now + STATE_TTL_SECONDS,
        }
    return state


def pop_state(state: str) -> Optional[str]:
    """
    Consume a state and return its callback URL.
    - unknown → None
    - expired → None (and forgotten)
    - valid → callback URL, and the state can never be used again
    """
    with _lock:
        data = _states.pop(state, None)

    if data is None:
        return None
    if data["expires_at"] < int(time.time()):
        return None
    return data["callback_url"]
