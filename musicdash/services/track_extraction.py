# musicdash/services/track_extraction.py
"""
Heuristic extraction of song names from an assistant reply.

Pattern matching over free text is approximate: expect some false positives
(a quoted phrase that is not a song) and some misses. Callers search every
candidate and drop whatever does not resolve.
"""
import re
from typing import List, Tuple

# A run of Capitalised words on one line ("Smells Like Teen Spirit", "Heart-Shaped Box")
_WORD = r"[A-Z0-9](?:[\w'’&-]|\.(?=\w))*"
_TITLE = rf"{_WORD}(?:[ \t]+{_WORD}){{0,7}}"
_ARTIST = rf"(?:[Tt]he[ \t]+)?{_WORD}(?:[ \t]+{_WORD}){{0,4}}"

_OPEN_QUOTE = r"[\"“‘']?"
_CLOSE_QUOTE = r"[\"”’']?"

# 'Creep' by Radiohead / Karma Police by Radiohead
_SONG_BY_ARTIST = re.compile(
    rf"{_OPEN_QUOTE}(?P<title>{_TITLE}){_CLOSE_QUOTE}[ \t]+by[ \t]+(?P<artist>{_ARTIST})"
)

# Radiohead - Creep   (also en/em dashes)
_ARTIST_DASH_SONG = re.compile(
    rf"(?P<artist>{_ARTIST})[ \t]+[-–—][ \t]+{_OPEN_QUOTE}(?P<title>{_TITLE}){_CLOSE_QUOTE}"
)

# "Creep", “Creep”, and 'Creep' when the quote is not an apostrophe
_QUOTED = re.compile(
    r"\"(?P<a>[^\"\n]{2,80})\"|“(?P<b>[^”\n]{2,80})”|(?<![\w'])'(?P<c>[^'\n]{2,80}?)'(?!\w)"
)

# the song Creep / the track "Creep"
_SONG_MENTION = re.compile(
    rf"\b(?:song|track|single)[ \t]+(?:called[ \t]+|titled[ \t]+)?{_OPEN_QUOTE}(?P<title>{_TITLE})"
)

# Creep track / their Creep song
_TRAILING_MENTION = re.compile(rf"(?P<title>{_TITLE})[ \t]+(?:song|track|single)\b")
# "Their Creep song": a leading possessive or demonstrative is not part of the title
_LEADING_DETERMINER = re.compile(r"^(?:their|his|her|its|my|your|our|this|that|these|those)[ \t]+", re.IGNORECASE)

_LIST_MARKER = re.compile(r"^[ \t]*(?:\d+[.)]|[-•*])[ \t]+", re.MULTILINE)
_EMPHASIS = re.compile(r"[*_`]+")

_IGNORED = {
    "i", "you", "it", "this", "that", "these", "those", "the", "a", "if", "and", "or", "but", "so",
    "their", "his", "her", "its", "my", "your", "our",
}
# "Inspired by Radiohead" is not a song
_IGNORED_BY_TITLES = {"inspired", "influenced", "produced", "written", "performed", "recorded", "covered"}
_STRIP = " \t\"'“”‘’.,;:!?"


def _clean(value: str) -> str:
    return value.strip(_STRIP)


def _normalise(text: str) -> str:
    text = _LIST_MARKER.sub("", text)
    # Markdown emphasis from the model ("**Creep** by Radiohead")
    return _EMPHASIS.sub("", text)


def extract_candidates(text: str) -> List[str]:
    """
    Return de-duplicated search candidates found in `text`, in reading order.

    Structured matches come out as "Title by Artist"; quoted phrases and
    song/track mentions come out as the bare title, unless that title was
    already captured together with its artist.
    """
    if not text:
        return []
    text = _normalise(text)

    found: List[Tuple[int, str]] = []
    paired_titles = set()

    for pattern in (_SONG_BY_ARTIST, _ARTIST_DASH_SONG):
        for m in pattern.finditer(text):
            title = _clean(m.group("title"))
            artist = _clean(m.group("artist"))
            key = title.lower()
            if len(title) < 2 or key in _IGNORED or key in _IGNORED_BY_TITLES or not artist:
                continue
            paired_titles.add(key)
            found.append((m.start(), f"{title} by {artist}"))

    for m in _QUOTED.finditer(text):
        found.append((m.start(), _clean(m.group("a") or m.group("b") or m.group("c") or "")))

    for pattern in (_SONG_MENTION, _TRAILING_MENTION):
        for m in pattern.finditer(text):
            found.append((m.start("title"), _LEADING_DETERMINER.sub("", _clean(m.group("title")))))

    candidates: List[str] = []
    seen = set()
    for _, candidate in sorted(found, key=lambda item: item[0]):
        key = candidate.lower()
        if len(candidate) < 2 or key in _IGNORED or key in seen or key in paired_titles:
            continue
        seen.add(key)
        candidates.append(candidate)
    return candidates
