"""Load the playlist the user wants to copy.

The id from the pasted URL may belong to a playlist or an album, so both
endpoints are tried. Public reads use an app (client-credentials) token first;
only when Spotify answers 401 do we fall back to the user's own token, which
can read private and collaborative playlists.
"""

import re

import requests as _requests
import spotipy.exceptions

from errors import ProviderRequestFailed, ResourceNotFound
from log_setup import get_logger
from models import SourcePlaylist
from spotify_client import create_client, retry_with_new_token

log = get_logger("playlist_source")

URL_ID_RE = re.compile(r"(?:playlist|album)/([a-zA-Z0-9]+)")


def extract_playlist_id(url):
    """Pull the playlist/album id out of an open.spotify.com link (or None)."""
    match = URL_ID_RE.search(url)
    return match.group(1) if match else None


def _collect_pages(sp, page):
    items = list(page.get("items") or [])
    while page.get("next"):
        page = sp.next(page)
        if not page:
            break
        items.extend(page.get("items") or [])
    return items


def read_playlist(sp, playlist_id):
    data = sp.playlist(playlist_id)
    items = _collect_pages(sp, data.get("tracks") or {})
    return SourcePlaylist.from_playlist(data, items)


def read_album(sp, album_id):
    data = sp.album(album_id)
    items = _collect_pages(sp, data.get("tracks") or {})
    return SourcePlaylist.from_album(data, items)


def _read_playlist_or_album(sp, playlist_id):
    """Return (SourcePlaylist or None, HTTP statuses of the failed attempts)."""
    statuses = []
    try:
        for reader in (read_playlist, read_album):
            try:
                return reader(sp, playlist_id), statuses
            except spotipy.exceptions.SpotifyException as e:
                log.debug(f"{reader.__name__}({playlist_id}) → {e.http_status}")
                statuses.append(e.http_status)
    except _requests.RequestException as e:
        log.error(f"Failed to fetch playlist/album {playlist_id}: {e}")
        raise ProviderRequestFailed("Failed to fetch playlist or album") from e
    return None, statuses


def load_playlist(playlist_id, backend, token_store):
    """Return the playlist (or album) as a SourcePlaylist.

    Raises ResourceNotFound when neither endpoint knows the id.
    """
    token = backend.get_client_credentials_token()["access_token"]
    playlist, statuses = _read_playlist_or_album(create_client(token), playlist_id)
    if playlist is not None:
        log.debug(f"Loaded {playlist.kind} {playlist_id} with app token")
        return playlist

    if 401 in statuses:
        log.info("Playlist needs your Spotify login to read, switching to user authorization...")
        return load_playlist_with_user_auth(playlist_id, token_store)

    raise ResourceNotFound("Resource not found", status=statuses[-1] if statuses else None)


def load_playlist_with_user_auth(playlist_id, token_store):
    def request(token):
        playlist, statuses = _read_playlist_or_album(create_client(token), playlist_id)
        if playlist is None:
            raise ResourceNotFound("Failed to fetch playlist or album", status=statuses[-1])
        return playlist

    return retry_with_new_token(request, token_store.get_valid_access_token)
