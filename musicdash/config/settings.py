import os
from dotenv import load_dotenv

def load_env():
    if os.getenv("ENVIRONMENT") == "production":
        return

    base_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(base_dir, ".env")

    if os.path.exists(env_path):
        load_dotenv(env_path)

# Load env now
load_env()

# Spotify
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8000/api/auth/callback/spotify")
SPOTIFY_SCOPES = (
    "user-read-email "
    "playlist-modify-public "
    "user-library-read "
    "user-top-read "
    "user-read-recently-played "
    "user-read-playback-state "
    "user-modify-playback-state"
)

# Session cookie (JWT)
SESSION_SECRET = os.getenv("SESSION_SECRET", "PLEASE_SET_SECRET")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "musicdash_session")
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(3600 * 24 * 7)))

# Gemini API
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# Web
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Polling / rate limiting
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "10"))
MIN_FETCH_INTERVAL_MS = int(os.getenv("MIN_FETCH_INTERVAL_MS", "1000"))
MAX_FETCH_INTERVAL_MS = int(os.getenv("MAX_FETCH_INTERVAL_MS", "30000"))
RECONCILE_DELAY_MS = int(os.getenv("RECONCILE_DELAY_MS", "500"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

# In-memory dashboard sessions
SESSION_IDLE_TIMEOUT_SECONDS = int(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", str(60 * 30)))
SESSION_SWEEP_SECONDS = float(os.getenv("SESSION_SWEEP_SECONDS", "60"))
