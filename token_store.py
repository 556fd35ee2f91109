"""Cached Spotify user tokens and the decision of when to refresh or re-authorize.

Tokens live in a single process-wide key/value file with three string entries
(access token, refresh token, expiry in ms since epoch). There is no locking:
two processes refreshing at once can leave the file with whichever write
landed last.
"""

import json
import os
import tempfile
import threading
import time

from errors import AuthRequired, MigrationError
from log_setup import get_logger
from models import TokenRecord

log = get_logger("token_store")

ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRY_KEY = "spotify_token_expiry"


def now_ms():
    return int(time.time() * 1000)


# --- File I/O ---

def load_json(path, default):
    try:
        with open(path) as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def atomic_write_json(path, data):
    """Write JSON atomically: write to temp file then rename."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class KeyValueStore:
    """String key/value map persisted to a JSON file. Loaded once on construction."""

    def __init__(self, path):
        self.path = path
        data = load_json(path, {})
        self._data = {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def get(self, key):
        return self._data.get(key)

    def set_many(self, values):
        self._data.update({k: str(v) for k, v in values.items()})
        atomic_write_json(self.path, self._data)


_store = None


def init_store(path):
    """Load the process-wide store from disk. Call once at startup."""
    global _store
    _store = KeyValueStore(path)
    return _store


def get_store():
    if _store is None:
        raise RuntimeError("token store not initialised; call init_store() first")
    return _store


class TokenStore:
    def __init__(self, store, backend, authorize=None, clock=now_ms):
        self.store = store
        self.backend = backend
        # Set after construction by whoever owns the AuthFlow (it needs us to save tokens)
        self.authorize = authorize
        self.clock = clock
        self.pending_authorization = None

    def load(self):
        access = self.store.get(ACCESS_TOKEN_KEY)
        expiry = self.store.get(EXPIRY_KEY)
        if not access or not expiry:
            return None
        return TokenRecord(
            access_token=access,
            refresh_token=self.store.get(REFRESH_TOKEN_KEY) or "",
            expires_at=int(expiry),
        )

    def save(self, record):
        self.store.set_many({
            ACCESS_TOKEN_KEY: record.access_token,
            REFRESH_TOKEN_KEY: record.refresh_token,
            EXPIRY_KEY: record.expires_at,
        })

    def get_valid_access_token(self):
        """Return a usable access token, refreshing it if it has expired.

        With nothing to refresh from, kicks off the interactive authorization
        in the background and raises AuthRequired; the caller retries once the
        user has finished logging in.
        """
        record = self.load()
        if record and record.is_valid(self.clock()):
            return record.access_token

        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        if refresh_token:
            return self.refresh_access_token(refresh_token)

        self._start_authorization()
        raise AuthRequired("Authorization required")

    def refresh_access_token(self, refresh_token):
        log.debug("Access token expired, refreshing")
        data = self.backend.refresh_access_token(refresh_token)
        record = TokenRecord.from_token_response(data, self.clock(), refresh_token)
        self.save(record)
        return record.access_token

    def _start_authorization(self):
        if self.authorize is None:
            return
        thread = threading.Thread(target=self._run_authorization, name="spotify-authorize", daemon=True)
        self.pending_authorization = thread
        thread.start()

    def _run_authorization(self):
        try:
            self.authorize()
        except MigrationError as e:
            log.warning(f"Authorization did not complete: {e}")
