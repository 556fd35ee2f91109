"""Interactive Spotify authorization (authorization-code flow).

authorize() opens an auth surface (by default: the system browser pointed at
Spotify, with a localhost server catching the redirect) and then waits for one
of two things:
  - the redirect delivers a code via deliver_code(), which is exchanged for
    tokens through the backend and saved to the token store;
  - the surface reports it was closed, polled once per POLL_INTERVAL.

Whichever happens first claims the outcome; the other is ignored.
"""

import threading
import time
import urllib.parse
import uuid
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer

from config import AUTH_TIMEOUT
from errors import AuthCancelled, AuthError, MigrationError
from log_setup import get_logger
from models import TokenRecord
from token_store import now_ms

log = get_logger("auth_flow")

POLL_INTERVAL = 1


class _Outcome:
    """Single-assignment result shared between the callback and the poll loop."""

    def __init__(self):
        self._lock = threading.Lock()
        self._claimed = False
        self.done = threading.Event()
        self.error = None

    def claim(self):
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    def finish(self, error=None):
        self.error = error
        self.done.set()


class AuthFlow:
    def __init__(self, redirect_uri, backend, token_store, surface_factory=None, poll_interval=POLL_INTERVAL):
        self.redirect_uri = redirect_uri
        self.backend = backend
        self.token_store = token_store
        self.surface_factory = surface_factory or LocalCallbackSurface
        self.poll_interval = poll_interval
        # One slot per process. A second authorize() overwrites it.
        self._callback = None

    def build_authorize_url(self, state):
        return self.backend.authorize_url(state, self.redirect_uri)

    def deliver_code(self, code, state):
        """Entry point for the redirect handler."""
        callback = self._callback
        if callback is None:
            log.warning("Authorization code arrived with no authorization in flight, ignoring")
            return
        callback(code, state)

    def authorize(self):
        state = str(uuid.uuid4())
        outcome = _Outcome()

        def on_code(code, returned_state):
            if not outcome.claim():
                log.debug("Authorization already resolved, ignoring late code")
                return
            if returned_state != state:
                outcome.finish(AuthError("OAuth state mismatch"))
                return
            try:
                self._exchange(code)
            except MigrationError as e:
                outcome.finish(e)
                return
            outcome.finish()

        previous, self._callback = self._callback, on_code
        surface = None
        opened = False
        try:
            url = self.build_authorize_url(state)
            surface = self.surface_factory(self.redirect_uri, self.deliver_code)
            surface.open(url)
            opened = True
            log.info("Opening Spotify login in your browser. If nothing opens, visit:")
            log.info(url)

            while not outcome.done.wait(self.poll_interval):
                if surface.is_closed() and outcome.claim():
                    outcome.finish(AuthCancelled("Authentication cancelled"))
        finally:
            if surface is not None:
                surface.close()
            if self._callback is on_code:
                # A flow that never opened hands the slot back to one already waiting
                self._callback = None if opened else previous

        if outcome.error is not None:
            raise outcome.error
        log.info("Spotify authorization complete.")

    def _exchange(self, code):
        data = self.backend.exchange_code(code, self.redirect_uri)
        record = TokenRecord.from_token_response(data, now_ms())
        self.token_store.save(record)
        return record


# --- Default surface: browser + localhost redirect catcher ---

class _CallbackHandler(BaseHTTPRequestHandler):
    server_version = "PlaylistCopierCallback/1.0"

    def do_GET(self):  # noqa: N802
        surface = self.server.surface
        parsed = urllib.parse.urlparse(self.path)
        qs = urllib.parse.parse_qs(parsed.query)

        if parsed.path != surface.callback_path:
            self.send_error(404)
            return

        error = (qs.get("error") or [None])[0]
        code = (qs.get("code") or [None])[0]
        state = (qs.get("state") or [None])[0]

        if error:
            log.info(f"Spotify authorization declined: {error}")
            surface.closed = True
            message = "Authorization was cancelled."
        elif code:
            surface.on_code(code, state)
            message = "Spotify authorization received."
        else:
            self.send_error(400, "Missing code")
            return

        body = (
            f"<html><body><h2>{message}</h2>"
            "<p>You can close this tab and return to the terminal.</p></body></html>"
        ).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):  # noqa: A002
        log.debug(format % args)


class LocalCallbackSurface:
    """Browser window + localhost server standing in for a login popup.

    There is no way to see the user close a browser tab, so "closed" means
    Spotify redirected back with an error (the user pressed Cancel), close()
    was called, or the timeout ran out.
    """

    def __init__(self, redirect_uri, on_code, timeout=AUTH_TIMEOUT, open_browser=True):
        parsed = urllib.parse.urlparse(redirect_uri)
        if parsed.scheme != "http" or parsed.hostname not in ("localhost", "127.0.0.1"):
            raise AuthError("redirect_uri must be http://127.0.0.1:<port>/... for the local callback server")
        self.host = parsed.hostname
        self.port = parsed.port or 8888
        self.callback_path = parsed.path or "/"
        self.on_code = on_code
        self.timeout = timeout
        self.open_browser = open_browser
        self.closed = False
        self._server = None
        self._opened_at = None

    def open(self, url):
        try:
            self._server = HTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as e:
            raise AuthError(f"Could not start local callback server on {self.host}:{self.port}: {e}") from e
        self._server.surface = self
        threading.Thread(target=self._server.serve_forever, name="oauth-callback", daemon=True).start()
        self._opened_at = time.monotonic()
        if self.open_browser:
            webbrowser.open(url, new=1, autoraise=True)

    def is_closed(self):
        if self.closed:
            return True
        if self.timeout and self._opened_at is not None:
            return time.monotonic() - self._opened_at > self.timeout
        return False

    def close(self):
        self.closed = True
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
