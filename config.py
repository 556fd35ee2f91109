# Spotify app credentials and local paths, read from the environment.
# Create an app at https://developer.spotify.com/dashboard
# Set Redirect URI to: http://127.0.0.1:8888/callback
#
# Scopes used:
#   - playlist-modify-private playlist-modify-public (create + fill the copy)
#   - user-read-private user-read-email (current user profile)
#
# To force a fresh login, delete the token store file.

import os

DIR = os.path.dirname(os.path.abspath(__file__))

CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
REDIRECT_URI = os.environ.get("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/callback")

TOKEN_STORE_PATH = os.environ.get("PLAYLIST_COPIER_TOKEN_STORE", f"{DIR}/.spotify_token_store.json")
LOG_DIR = os.environ.get("PLAYLIST_COPIER_LOG_DIR", f"{DIR}/logs")

# Seconds to wait for the browser authorization before treating it as abandoned
AUTH_TIMEOUT = int(os.environ.get("PLAYLIST_COPIER_AUTH_TIMEOUT", "300"))
