# musicdash/models/playback_models.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


# ======================================================
# Track
# ======================================================

class Track(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    artist: str
    album: Optional[str] = None
    album_art_url: Optional[str] = None


class RecentTrack(Track):
    played_at: str               # ISO 8601, as Spotify returns it


# ======================================================
# Playback
# ======================================================

class PlaybackSnapshot(BaseModel):
    """One poll's worth of provider truth. Replaced, never edited."""

    model_config = ConfigDict(frozen=True)

    track_id: str
    title: str
    artist: str
    album: str
    album_art_url: Optional[str] = None
    duration_ms: int
    progress_ms: int
    is_playing: bool
    uri: str


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    PLAYING = "playing"
    PAUSED = "paused"
    NO_ACTIVE_SESSION = "no_active_session"
    ERROR = "error"


class PlayerView(BaseModel):
    state: PollerState
    track: Optional[PlaybackSnapshot] = None
    progress_ms: int = 0
    error: Optional[str] = None
    needs_reauth: bool = False
    rate_limited: bool = False
    retry_in_seconds: Optional[int] = None


# ======================================================
# Responses
# ======================================================

class TrackListResponse(BaseModel):
    tracks: List[Track]


class RecentTracksResponse(BaseModel):
    tracks: List[RecentTrack]
