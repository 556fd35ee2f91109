"""Token endpoint calls that need the client secret.

The backend object is the only holder of CLIENT_SECRET; everything else only
ever sees the resulting tokens. Every grant goes through spotipy's auth
managers with in-memory caches, so spotipy writes no cache files of its own.
"""

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyOauthError
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOAuth

from errors import ProviderRequestFailed
from log_setup import get_logger
from spotify_client import SCOPES

log = get_logger("token_backend")

REQUEST_TIMEOUT = 30


def _http_status(error):
    # spotipy raises SpotifyOauthError while handling the requests HTTPError
    response = getattr(error.__context__, "response", None)
    return getattr(response, "status_code", None)


class SpotifyTokenBackend:
    def __init__(self, client_id, client_secret, redirect_uri, session=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.session = session or requests.Session()
        self._user_auths = {}
        self._app_auth = None

    def _user_auth(self, redirect_uri=None):
        redirect_uri = redirect_uri or self.redirect_uri
        auth = self._user_auths.get(redirect_uri)
        if auth is None:
            auth = SpotifyOAuth(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=redirect_uri,
                scope=SCOPES,
                open_browser=False,
                requests_session=self.session,
                requests_timeout=REQUEST_TIMEOUT,
                cache_handler=MemoryCacheHandler(),
            )
            self._user_auths[redirect_uri] = auth
        return auth

    def _client_credentials(self):
        if self._app_auth is None:
            self._app_auth = SpotifyClientCredentials(
                client_id=self.client_id,
                client_secret=self.client_secret,
                requests_session=self.session,
                requests_timeout=REQUEST_TIMEOUT,
                cache_handler=MemoryCacheHandler(),
            )
        return self._app_auth

    def _request(self, intent, call):
        try:
            return call()
        except SpotifyOauthError as e:
            status = _http_status(e)
            log.error(f"{intent}: {status} {e}")
            raise ProviderRequestFailed(intent, status=status) from e
        except requests.RequestException as e:
            log.error(f"{intent}: {e}")
            raise ProviderRequestFailed(intent) from e

    def authorize_url(self, state, redirect_uri=None):
        return self._request(
            "Failed to build Spotify authorize URL",
            lambda: self._user_auth(redirect_uri).get_authorize_url(state),
        )

    def exchange_code(self, code, redirect_uri=None):
        """Trade a one-time authorization code for access + refresh tokens."""
        data = self._request(
            "Failed to exchange Spotify code",
            lambda: self._user_auth(redirect_uri).get_access_token(code, as_dict=True, check_cache=False),
        )
        return {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
            "expires_in": data["expires_in"],
        }

    def get_client_credentials_token(self):
        """App-level token for public, read-only catalogue access. Reused until it nears expiry."""
        data = self._request(
            "Failed to get Spotify token",
            lambda: self._client_credentials().get_access_token(as_dict=True),
        )
        return {"access_token": data["access_token"], "expires_in": data["expires_in"]}

    def refresh_access_token(self, refresh_token):
        data = self._request(
            "Failed to refresh Spotify token",
            lambda: self._user_auth().refresh_access_token(refresh_token),
        )
        # spotipy fills in the old refresh token when Spotify did not rotate it
        return {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token") or refresh_token,
            "expires_in": data["expires_in"],
        }
