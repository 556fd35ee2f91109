#!/usr/bin/env python3
"""
Copy a Spotify playlist (or album) into your own Spotify account.

Usage:
  python3 migrate.py login                                          # Log in to Spotify
  python3 migrate.py show https://open.spotify.com/playlist/ID      # Show what would be copied
  python3 migrate.py copy https://open.spotify.com/playlist/ID      # Copy into a new private playlist
  python3 migrate.py copy URL --name "Road trip"                    # Copy under a different name
  python3 migrate.py copy URL --test                                # Test: first 10 tracks only
  python3 migrate.py copy URL --verbose                             # Also print match scores per track
"""

import argparse
import sys

from auth_flow import AuthFlow
from config import CLIENT_ID, CLIENT_SECRET, REDIRECT_URI, TOKEN_STORE_PATH
from errors import AuthCancelled, AuthRequired, MigrationError
from log_setup import get_logger, reset_latest, set_verbose
from playlist_migrator import PlaylistMigrator
from playlist_source import extract_playlist_id, load_playlist
from token_backend import SpotifyTokenBackend
from token_store import TokenStore, get_store, init_store

log = get_logger("migrate")

TEST_TRACK_LIMIT = 10


def build_services():
    """Wire backend, token store and auth flow together. Returns (backend, token_store, auth_flow).

    The token store wraps the process-wide store, so init_store() must have run.
    """
    backend = SpotifyTokenBackend(CLIENT_ID, CLIENT_SECRET, REDIRECT_URI)
    token_store = TokenStore(get_store(), backend)
    auth_flow = AuthFlow(REDIRECT_URI, backend, token_store)
    token_store.authorize = auth_flow.authorize
    return backend, token_store, auth_flow


def wait_for_login(token_store):
    """Block until the authorization started by an AuthRequired has finished."""
    thread = token_store.pending_authorization
    if thread is not None:
        log.info("Waiting for you to log in to Spotify in the browser...")
        thread.join()
    record = token_store.load()
    if record is None or not record.is_valid(token_store.clock()):
        raise AuthCancelled("Spotify login was not completed")


def run_with_login(token_store, fn, *args, **kwargs):
    """Run fn; if it needed a login, wait for that login and run it once more."""
    try:
        return fn(*args, **kwargs)
    except AuthRequired:
        wait_for_login(token_store)
        return fn(*args, **kwargs)


def print_progress(message, percent, phase, current_track=None):
    log.info(f"[{percent:5.1f}%] {message}")


def cmd_login(auth_flow):
    auth_flow.authorize()


def cmd_show(url, backend, token_store):
    playlist_id = extract_playlist_id(url)
    if not playlist_id:
        log.error("Invalid playlist URL")
        sys.exit(1)

    try:
        playlist = run_with_login(token_store, load_playlist, playlist_id, backend, token_store)
    except MigrationError as e:
        log.error(f"Failed to load playlist: {e}")
        sys.exit(1)

    log.info(f"{playlist.name} ({playlist.kind}, {len(playlist.tracks)} tracks)")
    if playlist.description:
        log.info(f"  {playlist.description}")
    if playlist.images:
        log.info(f"  Cover: {playlist.images[0]}")
    for i, t in enumerate(playlist.tracks, 1):
        log.info(f"  {i:3d}. {t.primary_artist} — {t.name}")
    return playlist


def cmd_copy(url, backend, token_store, name=None, test_mode=False):
    playlist_id = extract_playlist_id(url)
    if not playlist_id:
        log.error("Invalid playlist URL")
        sys.exit(1)

    try:
        run_with_login(token_store, token_store.get_valid_access_token)
        source = run_with_login(token_store, load_playlist, playlist_id, backend, token_store)
    except MigrationError as e:
        log.error(f"Failed to load playlist: {e}")
        sys.exit(1)

    log.info(f"Loaded '{source.name}': {len(source.tracks)} tracks")
    if test_mode:
        source.tracks = source.tracks[:TEST_TRACK_LIMIT]
        log.info(f"*** TEST MODE: copying up to {TEST_TRACK_LIMIT} tracks ***")

    migrator = PlaylistMigrator(token_store.get_valid_access_token)
    try:
        new_id = migrator.copy_playlist(source, name=name, on_progress=print_progress)
    except MigrationError as e:
        log.error(f"Failed to copy playlist: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        log.warning("*** Interrupted! Tracks added so far stay on the new playlist. ***")
        sys.exit(130)

    log.info(f"Done! https://open.spotify.com/playlist/{new_id}")
    return new_id


def main(argv=None):
    reset_latest()

    class HelpOnErrorParser(argparse.ArgumentParser):
        def error(self, message):
            self.print_help(sys.stderr)
            sys.stderr.write(f"\nerror: {message}\n")
            sys.exit(2)

    parser = HelpOnErrorParser(
        description="Copy a Spotify playlist into your account",
        usage="%(prog)s <flow> [url] [options]",
    )
    parser.add_argument("flow", choices=["login", "show", "copy"], help="What to do: login, show, copy")
    parser.add_argument("url", nargs="?", help="Source playlist or album URL (show, copy)")
    parser.add_argument("--name", help="Name for the new playlist (default: source name)")
    parser.add_argument("--test", action="store_true", help="Limit to 10 tracks")
    parser.add_argument("--verbose", action="store_true", help="Show per-track match details on the console")
    args = parser.parse_args(argv)
    set_verbose(args.verbose)

    if args.flow in ("show", "copy") and not args.url:
        parser.error(f"{args.flow} needs a playlist URL")

    if not CLIENT_ID or not CLIENT_SECRET:
        log.error("Error: SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET must be set")
        sys.exit(1)

    init_store(TOKEN_STORE_PATH)
    backend, token_store, auth_flow = build_services()

    if args.flow == "login":
        try:
            cmd_login(auth_flow)
        except MigrationError as e:
            log.error(f"Login failed: {e}")
            sys.exit(1)
    elif args.flow == "show":
        cmd_show(args.url, backend, token_store)
    elif args.flow == "copy":
        cmd_copy(args.url, backend, token_store, name=args.name, test_mode=args.test)


if __name__ == "__main__":
    main()
