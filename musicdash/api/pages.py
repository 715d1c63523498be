# musicdash/api/pages.py
import logging
from html import escape
from typing import Iterable, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from musicdash.models.chat_models import ChatMessage, ChatRole
from musicdash.models.playback_models import PlayerView, PollerState, RecentTrack
from musicdash.services.formatting import format_time, relative_time
from musicdash.services.playback_poller import PREMIUM_REQUIRED_MESSAGE
from musicdash.services.session_service import DashboardSession
from musicdash.services.user_auth import get_current_session

router = APIRouter()
logger = logging.getLogger(__name__)

SPOTIFY_WEB_PLAYER = "https://open.spotify.com"
RECENT_LIMIT = 20


# ======================================================
# Layout
# ======================================================

_PAGE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{title}</title>
  <style>
    body {{ font-family: system-ui, -apple-system, "Segoe UI", Roboto, sans-serif; margin: 0; background: #000; color: #e4e4e7; }}
    main {{ max-width: 960px; margin: 0 auto; padding: 24px; }}
    .card {{ background: #18181b; border: 1px solid #27272a; border-radius: 12px; padding: 20px; margin-bottom: 16px; }}
    .error {{ color: #f87171; }}
    .muted {{ color: #a1a1aa; font-size: 0.9em; }}
    button, .button {{ background: #27272a; color: #fff; border: 0; border-radius: 8px; padding: 8px 14px; cursor: pointer; text-decoration: none; }}
    .primary {{ background: #1DB954; color: #000; }}
    .bubble {{ padding: 8px 12px; border-radius: 10px; margin: 6px 0; white-space: pre-wrap; }}
    .user {{ background: #1DB954; color: #000; margin-left: 20%; }}
    .assistant {{ background: #27272a; margin-right: 20%; }}
    ul.tracks {{ list-style: none; padding: 0; }}
    ul.tracks li {{ display: flex; gap: 12px; align-items: center; padding: 6px 0; }}
    ul.tracks img {{ width: 40px; height: 40px; border-radius: 4px; }}
  </style>
</head>
<body>
<main>
{body}
</main>
{script}
</body>
</html>
"""


def _html_page(title: str, body: str, script: str = "") -> str:
    return _PAGE.format(title=escape(title), body=body, script=script)


def _track_list(tracks: Iterable, with_time: bool = False) -> str:
    items = []
    for track in tracks:
        art = f'<img src="{escape(track.album_art_url)}" alt=""/>' if track.album_art_url else ""
        when = ""
        if with_time and isinstance(track, RecentTrack):
            when = f' <span class="muted">{escape(relative_time(track.played_at))}</span>'
        items.append(
            f"<li>{art}<div><strong>{escape(track.title)}</strong>"
            f'<div class="muted">{escape(track.artist)}</div></div>{when}</li>'
        )
    return f'<ul class="tracks">{"".join(items)}</ul>'


# ======================================================
# Fragments
# ======================================================

def render_setup_guide(error: Optional[str]) -> str:
    """Shown when playback control can't work yet (no premium/device, or expired sign-in)."""
    banner = f'<p class="error">{escape(error)}</p>' if error else ""
    return f"""
<div class="card setup-guide">
  <h2>Spotify Playback Setup</h2>
  {banner}
  <p>To use the music player, please follow these steps:</p>
  <ol>
    <li><strong>Make sure you have Spotify Premium</strong> - The playback control features require a Premium account.</li>
    <li><strong>Open Spotify on a device</strong> - Playback control requires an active Spotify session on any device (desktop app, web player, mobile app, etc.).</li>
    <li><strong>Allow the required permissions</strong> - When signing in, make sure you accept all the requested permissions.</li>
    <li><strong>Refresh this page</strong> - After setting up Spotify, refresh this page to reconnect.</li>
  </ol>
  <a class="button primary" href="/api/auth/signin?callbackUrl=/dashboard">Connect with Spotify</a>
  <a class="button" href="{SPOTIFY_WEB_PLAYER}" target="_blank" rel="noopener">Open Spotify</a>
  <button data-action="refresh">Retry</button>
</div>"""


def render_player(view: PlayerView) -> str:
    if view.error:
        if view.rate_limited and view.retry_in_seconds:
            hint = f"Retrying automatically in {view.retry_in_seconds} seconds..."
        else:
            hint = "Make sure you have Spotify Premium and an active device."
        retry_disabled = " disabled" if view.rate_limited else ""
        html = f"""
<div class="card player player-error">
  <p class="error">{escape(view.error)}</p>
  <p class="muted">{hint}</p>
  <button data-action="refresh"{retry_disabled}>Retry</button>
  <button data-action="dismiss">Dismiss</button>
  <a class="button primary" href="{SPOTIFY_WEB_PLAYER}" target="_blank" rel="noopener">Open Spotify</a>
</div>"""
        if view.needs_reauth or view.error == PREMIUM_REQUIRED_MESSAGE:
            html += render_setup_guide(None)
        return html

    track = view.track
    if track is None:
        if view.state in (PollerState.IDLE, PollerState.POLLING):
            return '<div class="card player"><p class="muted">Connecting to Spotify...</p></div>'
        return f"""
<div class="card player not-playing">
  <p class="muted">No track currently playing on Spotify</p>
  <button data-action="refresh">Refresh</button>
  <a class="button primary" href="{SPOTIFY_WEB_PLAYER}" target="_blank" rel="noopener">Open Spotify</a>
</div>"""

    art = f'<img src="{escape(track.album_art_url)}" alt="{escape(track.album)} cover" width="64" height="64"/>' if track.album_art_url else ""
    toggle = "Pause" if track.is_playing else "Play"
    return f"""
<div class="card player">
  {art}
  <div><strong>{escape(track.title)}</strong><div class="muted">{escape(track.artist)}</div></div>
  <div>
    <button data-action="previous">Previous</button>
    <button data-action="play-pause">{toggle}</button>
    <button data-action="next">Next</button>
  </div>
  <div>
    <span>{format_time(view.progress_ms)}</span>
    <input type="range" name="seek" min="0" max="{track.duration_ms}" value="{view.progress_ms}"/>
    <span>{format_time(track.duration_ms)}</span>
  </div>
</div>"""


def render_chat(messages: Iterable[ChatMessage]) -> str:
    bubbles = []
    for message in messages:
        css = "user" if message.role is ChatRole.USER else "assistant"
        bubble = f'<div class="bubble {css}">{escape(message.content)}</div>'
        if message.suggestions:
            bubble += '<div class="suggestions"><p class="muted">Suggested tracks</p>' + _track_list(message.suggestions) + "</div>"
        bubbles.append(bubble)

    if not bubbles:
        bubbles.append('<p class="muted">Ask for music recommendations to get started.</p>')

    return f"""
<div class="card chat">
  <div class="messages">{"".join(bubbles)}</div>
  <form id="chat-form">
    <input name="message" placeholder="Ask for music recommendations..." autocomplete="off"/>
    <button class="primary" type="submit">Send</button>
  </form>
</div>"""


def render_recent(tracks: Optional[Iterable[RecentTrack]], error: Optional[str] = None) -> str:
    if error:
        body = f'<p class="error">{escape(error)}</p>'
    elif not tracks:
        body = '<p class="muted">No recently played tracks</p>'
    else:
        body = _track_list(tracks, with_time=True)
    return f'<div class="card recent"><h3>Recently Played</h3>{body}</div>'


def render_login(error: Optional[str] = None, callback_url: str = "/dashboard") -> str:
    banner = f'<p class="error">Sign-in failed: {escape(error)}</p>' if error else ""
    signin = "/api/auth/signin?" + urlencode({"callbackUrl": callback_url})
    body = f"""
<div class="card" style="max-width: 400px; margin: 80px auto; text-align: center;">
  <h1>AI Music Discovery</h1>
  <p class="muted">Sign in with your Spotify account to get personalized music recommendations</p>
  {banner}
  <a class="button primary" href="{escape(signin)}">Continue with Spotify</a>
</div>"""
    return _html_page("Sign in - AI Music Discovery", body)


# Re-renders fragments; the server holds all state, the page only asks
_DASHBOARD_SCRIPT = """<script>
async function reload(name) {
  const r = await fetch('/dashboard/' + name);
  if (r.ok) document.getElementById(name).innerHTML = await r.text();
}
const actions = {
  'refresh': ['POST', '/api/player/refresh'],
  'dismiss': ['DELETE', '/api/player/error'],
  'play-pause': ['POST', '/api/player/play-pause'],
  'next': ['POST', '/api/player/next'],
  'previous': ['POST', '/api/player/previous'],
};
document.addEventListener('click', async (e) => {
  const action = e.target.dataset && e.target.dataset.action;
  if (!actions[action]) return;
  const [method, url] = actions[action];
  await fetch(url, {method});
  reload('player');
});
document.addEventListener('pointerdown', (e) => {
  if (e.target.name === 'seek') fetch('/api/player/drag/start', {method: 'POST'});
});
document.addEventListener('change', async (e) => {
  if (e.target.name !== 'seek') return;
  await fetch('/api/player/seek?position_ms=' + e.target.value, {method: 'PUT'});
  await fetch('/api/player/drag/end', {method: 'POST'});
  reload('player');
});
document.addEventListener('submit', async (e) => {
  if (e.target.id !== 'chat-form') return;
  e.preventDefault();
  const input = e.target.elements.message;
  const message = input.value.trim();
  if (!message) return;
  input.value = '';
  await fetch('/api/chat/messages', {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify({message}),
  });
  reload('chat');
});
setInterval(() => {
  if (document.activeElement && document.activeElement.name === 'seek') return;
  reload('player');
}, 1000);
</script>"""


def render_dashboard(session: DashboardSession) -> str:
    body = f"""
<header style="display: flex; justify-content: space-between; align-items: center;">
  <h1>AI Music Discovery</h1>
  <form method="post" action="/api/auth/signout"><button type="submit">Sign out</button></form>
</header>
<section id="player">{render_player(session.poller.view())}</section>
<section id="chat">{render_chat(session.chat.messages)}</section>
<section id="recent">{_recent_fragment(session)}</section>"""
    return _html_page("Dashboard - AI Music Discovery", body, _DASHBOARD_SCRIPT)


def _recent_fragment(session: DashboardSession) -> str:
    result = session.spotify.get_recently_played(RECENT_LIMIT)
    if not result.ok:
        logger.error(f"Error fetching recent tracks: {result.describe()}")
        return render_recent(None, error="Failed to fetch recent tracks")
    return render_recent(result.data)


# ======================================================
# Routes
# ======================================================

@router.get("/", include_in_schema=False)
def root():
    # Signed-in visitors never get here, the auth gate sends them to /dashboard
    return RedirectResponse(url="/login", status_code=302)


@router.get("/login", response_class=HTMLResponse, include_in_schema=False)
def login_page(
    error: Optional[str] = Query(None),
    callbackUrl: Optional[str] = Query(None),
):
    return render_login(error, callbackUrl or "/dashboard")


@router.get("/dashboard", response_class=HTMLResponse, include_in_schema=False)
def dashboard(session: DashboardSession = Depends(get_current_session)):
    return render_dashboard(session)


@router.get("/dashboard/player", response_class=HTMLResponse, include_in_schema=False)
def player_fragment(session: DashboardSession = Depends(get_current_session)):
    return render_player(session.poller.view())


@router.get("/dashboard/chat", response_class=HTMLResponse, include_in_schema=False)
def chat_fragment(session: DashboardSession = Depends(get_current_session)):
    return render_chat(session.chat.messages)


@router.get("/dashboard/recent", response_class=HTMLResponse, include_in_schema=False)
def recent_fragment(session: DashboardSession = Depends(get_current_session)):
    return _recent_fragment(session)
