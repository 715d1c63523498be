# musicdash/services/formatting.py
from datetime import datetime, timezone
from typing import Optional


def format_time(ms: int) -> str:
    """Milliseconds → m:ss (e.g. 215000 → 3:35)."""
    total_seconds = max(0, int(ms)) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"


def parse_played_at(value: str) -> datetime:
    # Spotify sends e.g. 2024-05-01T12:30:00.123Z
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def relative_time(played_at: str, now: Optional[datetime] = None) -> str:
    """
    "just now" / "N min ago" / "Nh ago" / "Nd ago".
    Unparseable timestamps come back unchanged.
    """
    try:
        then = parse_played_at(played_at)
    except ValueError:
        return played_at

    now = now or datetime.now(timezone.utc)
    minutes = int((now - then).total_seconds() // 60)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"

    return f"{hours // 24}d ago"
