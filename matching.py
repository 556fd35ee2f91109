"""Resolve a source track to a Spotify track URI by search.

Matching is deliberately approximate: one query built from the title and the
first listed artist, one result, take it. Title similarity is only computed to
flag suspicious matches in the log.
"""

import re
import unicodedata

from log_setup import get_logger
from spotify_client import api_call, create_client, retry_with_new_token

log = get_logger("matching")

TITLE_MATCH_THRESHOLD = 0.7
SEARCH_LIMIT = 1

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(title):
    """Lower-case, NFKD-decompose, drop punctuation and collapse whitespace."""
    title = unicodedata.normalize("NFKD", title.lower().strip())
    return _WHITESPACE_RE.sub(" ", _PUNCTUATION_RE.sub("", title))


def edit_distance(a, b):
    """Levenshtein distance, keeping a single row of the table."""
    if len(b) > len(a):
        a, b = b, a
    row = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        diagonal, row[0] = row[0], i
        for j, cb in enumerate(b, 1):
            diagonal, row[j] = row[j], min(row[j] + 1, row[j - 1] + 1, diagonal + (ca != cb))
    return row[-1]


def similarity(a, b):
    """Score two titles in [0, 1].

    The longer title is also compared cut down to the shorter one's length, so
    "Yesterday" and "Yesterday - Remastered 2009" score 1.0.
    """
    a, b = normalize(a), normalize(b)
    longest, shortest = max(len(a), len(b)), min(len(a), len(b))
    if not longest:
        return 1.0
    score = 1 - edit_distance(a, b) / longest
    if 0 < shortest < longest:
        score = max(score, 1 - edit_distance(a[:shortest], b[:shortest]) / shortest)
    return score


def build_query(track):
    return f"track:{track.name} artist:{track.primary_artist}"


def search_track(track, token_provider):
    """Return the URI of the top search hit for track, or None if nothing matched."""

    def request(token):
        sp = create_client(token)
        results = api_call(
            "Failed to search track", sp.search,
            q=build_query(track), type="track", limit=SEARCH_LIMIT,
        )
        items = ((results or {}).get("tracks") or {}).get("items") or []
        if not items or not items[0]:
            log.debug(f"MISS  no_results | {track.primary_artist} — {track.name}")
            return None

        best = items[0]
        score = similarity(track.name, best["name"])
        if score < TITLE_MATCH_THRESHOLD:
            log.warning(f"Weak match score={score:.2f}: {track.primary_artist} — {track.name} → {best['name']}")
        else:
            log.debug(f"OK    score={score:.2f} → {best['name']} | {track.primary_artist} — {track.name}")
        return best["uri"]

    return retry_with_new_token(request, token_provider)
