"""Shared Spotify Web API plumbing.

Every module that talks to the Web API goes through here: create_client() for
a spotipy instance bound to one access token, retry_with_new_token() to fetch
that token, and api_call() to turn spotipy/requests failures into
ProviderRequestFailed.
"""

import functools

import requests as _requests
import spotipy

from errors import ProviderRequestFailed
from log_setup import get_logger

log = get_logger("spotify_client")

SCOPES = [
    "playlist-modify-private",
    "playlist-modify-public",
    "user-read-private",
    "user-read-email",
]

CLIENT_CACHE_SIZE = 4


@functools.lru_cache(maxsize=CLIENT_CACHE_SIZE)
def create_client(token):
    """Return a spotipy.Spotify bound to a bare access token.

    Clients are kept per token, so a migration reuses one HTTP session and its
    connection pool. spotipy closes the session when an evicted client is
    collected. The session is mounted with max_retries=0 so failed calls
    surface immediately.
    """
    session = _requests.Session()
    session.mount("https://", _requests.adapters.HTTPAdapter(max_retries=0))
    return spotipy.Spotify(auth=token, requests_session=session)


def retry_with_new_token(request_fn, token_provider):
    """Fetch a token once and run request_fn with it.

    Only the token is re-acquired per call (which may refresh it); a failing
    request_fn is not invoked again.
    """
    token = token_provider()
    return request_fn(token)


def api_call(intent, fn, *args, **kwargs):
    """Call a spotipy method, raising ProviderRequestFailed(intent) on any failure."""
    try:
        return fn(*args, **kwargs)
    except spotipy.exceptions.SpotifyException as e:
        log.error(f"{intent}: {e.http_status} {e.msg}")
        raise ProviderRequestFailed(intent, status=e.http_status) from e
    except _requests.RequestException as e:
        log.error(f"{intent}: {e}")
        raise ProviderRequestFailed(intent) from e
