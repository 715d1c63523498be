# musicdash/services/spotify_now_playing.py
from typing import Any, Dict, List, Optional

from musicdash.models.playback_models import PlaybackSnapshot, RecentTrack, Track


def _album_art(album: Dict[str, Any]) -> Optional[str]:
    images = album.get("images") or []
    return images[0].get("url") if images else None


def parse_track(item: Dict[str, Any]) -> Track:
    """Spotify track object -> Track (first artist only, like the catalog lists)."""
    artists = item.get("artists") or []
    album = item.get("album") or {}
    return Track(
        id=item["id"],
        title=item.get("name", ""),
        artist=artists[0].get("name", "") if artists else "",
        album=album.get("name"),
        album_art_url=_album_art(album),
    )


def parse_tracks(items: List[Dict[str, Any]]) -> List[Track]:
    # Local files and unavailable tracks come back without an id
    return [parse_track(item) for item in items if item and item.get("id")]


def parse_playback(data: Optional[Dict[str, Any]]) -> Optional[PlaybackSnapshot]:
    """
    GET /me/player payload -> PlaybackSnapshot.
    回傳：
    - PlaybackSnapshot：有在播放
    - None：沒有 item (nothing playing, or an ad / episode Spotify does not describe)
    """
    if not data:
        return None
    item = data.get("item")
    if not item or not item.get("id"):
        return None

    album = item.get("album") or {}
    duration = int(item.get("duration_ms") or 0)
    progress = int(data.get("progress_ms") or 0)

    return PlaybackSnapshot(
        track_id=item["id"],
        title=item.get("name", ""),
        artist=", ".join(a.get("name", "") for a in item.get("artists") or []),
        album=album.get("name", ""),
        album_art_url=_album_art(album),
        duration_ms=duration,
        progress_ms=min(progress, duration) if duration else progress,
        is_playing=bool(data.get("is_playing")),
        uri=item.get("uri", ""),
    )


def parse_recently_played(payload: Dict[str, Any]) -> List[RecentTrack]:
    tracks = []
    for entry in payload.get("items", []):
        item = entry.get("track") or {}
        if not item.get("id"):
            continue
        track = parse_track(item)
        tracks.append(RecentTrack(**track.model_dump(), played_at=entry.get("played_at", "")))
    return tracks
