# musicdash/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# === Import Routers ===
from musicdash.api.auth_api import router as auth_router          # Spotify sign-in / session cookie
from musicdash.api.chat_api import router as chat_router          # Chat relay + orchestrated turns
from musicdash.api.pages import router as pages_router            # HTML dashboard
from musicdash.api.player_api import router as player_router      # Playback poller + controls
from musicdash.api.tracks_api import router as tracks_router      # Recent / top / search / recommendations
from musicdash.config.settings import CORS_ORIGINS, LOG_LEVEL
from musicdash.middleware.auth_gate import AuthGateMiddleware
from musicdash.services.session_service import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(registry: Optional[SessionRegistry] = None) -> FastAPI:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Stop every poller so no timer outlives the app
        app.state.registry.close()
        logger.info("Session registry closed")

    app = FastAPI(
        title="Music Discovery Dashboard",
        description=(
            "Backend for: "
            "• Spotify sign-in (authorization code + refresh) "
            "• Now-playing poller with rate-limit backoff "
            "• AI chat with Spotify track suggestions"
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry or SessionRegistry()

    # === Auth gate (pages redirect to /login, API answers 401) ===
    app.add_middleware(AuthGateMiddleware)

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Spotify sign-in ===
    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])

    # === Player / tracks / chat API ===
    app.include_router(player_router, prefix="/api", tags=["Player"])
    app.include_router(tracks_router, prefix="/api", tags=["Tracks"])
    app.include_router(chat_router, prefix="/api", tags=["Chat"])

    # === Pages (HTML) ===
    app.include_router(pages_router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "sessions": len(app.state.registry)}

    return app


app = create_app()
