# musicdash/services/jwt_service.py
import jwt
import time
from typing import Optional
from musicdash.config.settings import SESSION_SECRET, SESSION_MAX_AGE

JWT_ALGORITHM = "HS256"


def create_session_token(session_id: str) -> str:
    payload = {
        "sid": session_id,
        "exp": int(time.time()) + SESSION_MAX_AGE
    }
    return jwt.encode(payload, SESSION_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, SESSION_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    return payload.get("sid")
