"""Create the destination playlist and fill it with matched tracks.

Two phases, always in this order and never overlapping:
  1. search: one sequential search per source track (progress 0% → 50%)
  2. add:    matched URIs in batches of 100, 1s apart (progress 50% → 100%)

A failed batch aborts the run. Batches that already went through stay on the
playlist; nothing is rolled back.
"""

import time

from errors import MigrationError
from log_setup import get_logger
from matching import search_track
from models import MigrationProgress
from spotify_client import api_call, create_client, retry_with_new_token

log = get_logger("playlist_migrator")

BATCH_SIZE = 100
DELAY_BETWEEN_BATCHES = 1
DESCRIPTION_LIMIT = 300

SEARCHING = "searching"
ADDING = "adding"

IDLE = "idle"
DONE = "done"
FAILED = "failed"


def truncate_description(description):
    if description and len(description) > DESCRIPTION_LIMIT:
        return description[:DESCRIPTION_LIMIT - 3] + "..."
    return description


class PlaylistMigrator:
    def __init__(self, token_provider):
        self.token_provider = token_provider
        self.state = IDLE
        self.progress = None
        self.unmatched = []

    def _call(self, intent, method_name, *args, **kwargs):
        def request(token):
            sp = create_client(token)
            return api_call(intent, getattr(sp, method_name), *args, **kwargs)
        return retry_with_new_token(request, self.token_provider)

    def get_current_user_id(self):
        return self._call("Failed to get user profile", "current_user")["id"]

    def create_playlist(self, name, description=None):
        """Create a private playlist for the current user, return its id."""
        user_id = self.get_current_user_id()
        result = self._call(
            "Failed to create playlist", "user_playlist_create",
            user_id, name, public=False, description=truncate_description(description) or "",
        )
        log.info(f"Created playlist '{name}': {result['id']}")
        return result["id"]

    def _emit(self, on_progress, message, percent, phase, track=None):
        self.progress = MigrationProgress(message, percent, phase, track)
        if on_progress:
            on_progress(message, percent, phase, track)

    def migrate(self, tracks, playlist_id, on_progress=None):
        self.unmatched = []
        try:
            found = self._search_phase(tracks, on_progress)
            self._add_phase(found, playlist_id, on_progress)
        except MigrationError:
            self.state = FAILED
            raise
        self.state = DONE

        if self.unmatched:
            log.warning(f"Some tracks were not found ({len(self.unmatched)}):")
            for t in self.unmatched:
                log.warning(f"  {t.primary_artist} — {t.name}")
        log.info(f"Added {len(found)}/{len(tracks)} tracks to playlist {playlist_id}")

    def _search_phase(self, tracks, on_progress):
        self.state = SEARCHING
        found = []
        total = len(tracks)
        for i, track in enumerate(tracks):
            self._emit(
                on_progress,
                f'Searching for "{track.name}" by {track.primary_artist}...',
                (i / total) * 50,
                SEARCHING,
                track,
            )
            uri = search_track(track, self.token_provider)
            if uri:
                found.append(uri)
            else:
                self.unmatched.append(track)
        return found

    def _add_phase(self, found, playlist_id, on_progress):
        self.state = ADDING
        for start in range(0, len(found), BATCH_SIZE):
            batch = found[start:start + BATCH_SIZE]
            end = min(start + BATCH_SIZE, len(found))
            self._emit(
                on_progress,
                f"Adding tracks {start + 1}-{end} of {len(found)}...",
                50 + (start / len(found)) * 50,
                ADDING,
            )
            self._call("Failed to add tracks to playlist", "playlist_add_items", playlist_id, batch)
            log.debug(f"Added batch {start + 1}-{end} to {playlist_id}")

            if end < len(found):
                time.sleep(DELAY_BETWEEN_BATCHES)

    def copy_playlist(self, source, name=None, on_progress=None):
        """Create a new playlist mirroring source and fill it. Returns the new playlist id."""
        playlist_id = self.create_playlist(name or source.name, source.description)
        self.migrate(source.tracks, playlist_id, on_progress)
        return playlist_id
