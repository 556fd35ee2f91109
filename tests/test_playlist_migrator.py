"""Tests for playlist_migrator.py — search is mocked, spotipy client is mocked, sleep is mocked."""

import math
import os
import sys
from unittest.mock import MagicMock, call, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import spotipy.exceptions

import playlist_migrator as pm
from errors import ProviderRequestFailed
from models import Artist, GenericTrack, SourcePlaylist


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_tracks(n):
    return [GenericTrack(f"Song {i}", (Artist(f"Artist {i}"), Artist("Guest"))) for i in range(n)]


def uri_for(track):
    return f"spotify:track:{track.name.replace(' ', '')}"


def all_found(track, token_provider):
    return uri_for(track)


class ProgressRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, message, percent, phase, current_track=None):
        self.events.append((message, percent, phase, current_track))

    def phase(self, name):
        return [e for e in self.events if e[2] == name]


@pytest.fixture
def sp():
    with patch.object(pm, "create_client") as mock_create:
        yield mock_create.return_value


@pytest.fixture
def sleep():
    with patch.object(pm.time, "sleep") as mock_sleep:
        yield mock_sleep


# ---------------------------------------------------------------------------
# migrate()
# ---------------------------------------------------------------------------

class TestMigrate:
    @patch.object(pm, "search_track", side_effect=all_found)
    def test_150_tracks_two_batches(self, mock_search, sp, sleep):
        tracks = make_tracks(150)
        uris = [uri_for(t) for t in tracks]
        progress = ProgressRecorder()
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        migrator.migrate(tracks, "pl1", progress)

        assert mock_search.call_count == 150
        assert [c.args[0] for c in mock_search.call_args_list] == tracks
        assert sp.playlist_add_items.call_args_list == [call("pl1", uris[:100]), call("pl1", uris[100:])]
        sleep.assert_called_once_with(1)
        assert migrator.state == pm.DONE

        searching = progress.phase(pm.SEARCHING)
        assert len(searching) == 150
        percents = [e[1] for e in searching]
        assert percents[0] == 0
        assert percents == sorted(percents)
        assert all(p < 50 for p in percents)
        assert searching[3][3] is tracks[3]
        assert searching[0][0] == 'Searching for "Song 0" by Artist 0...'

        adding = progress.phase(pm.ADDING)
        assert [e[1] for e in adding] == [50, pytest.approx(50 + 100 / 150 * 50)]
        assert [e[0] for e in adding] == ["Adding tracks 1-100 of 150...", "Adding tracks 101-150 of 150..."]
        assert all(e[3] is None for e in adding)
        assert migrator.progress.phase == pm.ADDING

    @patch.object(pm, "search_track", side_effect=all_found)
    def test_batch_failure_aborts_remaining(self, mock_search, sp, sleep):
        tracks = make_tracks(250)
        sp.playlist_add_items.side_effect = [
            {"snapshot_id": "s1"},
            spotipy.exceptions.SpotifyException(500, -1, "server error"),
            {"snapshot_id": "s3"},
        ]
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        with pytest.raises(ProviderRequestFailed, match="Failed to add tracks to playlist"):
            migrator.migrate(tracks, "pl1")

        assert sp.playlist_add_items.call_count == 2
        assert len(sp.playlist_add_items.call_args_list[0].args[1]) == 100
        assert migrator.state == pm.FAILED

    @patch.object(pm, "search_track", side_effect=all_found)
    def test_second_of_two_batches_fails(self, mock_search, sp, sleep):
        tracks = make_tracks(150)
        sp.playlist_add_items.side_effect = [
            {"snapshot_id": "s1"},
            spotipy.exceptions.SpotifyException(502, -1, "bad gateway"),
        ]
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        with pytest.raises(ProviderRequestFailed) as exc:
            migrator.migrate(tracks, "pl1")

        assert exc.value.status == 502
        assert sp.playlist_add_items.call_args_list[0] == call("pl1", [uri_for(t) for t in tracks[:100]])
        assert migrator.state == pm.FAILED

    @patch.object(pm, "search_track")
    def test_unmatched_tracks_collected_not_fatal(self, mock_search, sp, sleep):
        tracks = make_tracks(5)
        missing = {tracks[1].name, tracks[3].name}
        mock_search.side_effect = lambda t, tp: None if t.name in missing else uri_for(t)
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        migrator.migrate(tracks, "pl1")

        assert migrator.unmatched == [tracks[1], tracks[3]]
        sp.playlist_add_items.assert_called_once_with("pl1", [uri_for(tracks[i]) for i in (0, 2, 4)])
        sleep.assert_not_called()
        assert migrator.state == pm.DONE

    @patch.object(pm, "search_track", return_value=None)
    def test_nothing_matched_adds_nothing(self, mock_search, sp, sleep):
        progress = ProgressRecorder()
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        migrator.migrate(make_tracks(3), "pl1", progress)

        sp.playlist_add_items.assert_not_called()
        assert progress.phase(pm.ADDING) == []
        assert len(migrator.unmatched) == 3
        assert migrator.state == pm.DONE

    @patch.object(pm, "search_track", side_effect=all_found)
    def test_empty_track_list(self, mock_search, sp, sleep):
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))
        migrator.migrate([], "pl1")

        mock_search.assert_not_called()
        sp.playlist_add_items.assert_not_called()
        assert migrator.state == pm.DONE

    @pytest.mark.parametrize("found_count", [1, 99, 100, 101, 200, 250])
    def test_batch_sizes(self, found_count, sp, sleep):
        tracks = make_tracks(found_count)
        with patch.object(pm, "search_track", side_effect=all_found):
            pm.PlaylistMigrator(MagicMock(return_value="tok")).migrate(tracks, "pl1")

        sizes = [len(c.args[1]) for c in sp.playlist_add_items.call_args_list]
        assert len(sizes) == math.ceil(found_count / 100)
        assert all(s <= 100 for s in sizes)
        assert sum(sizes) == found_count
        assert sleep.call_count == len(sizes) - 1

    @patch.object(pm, "search_track", side_effect=ProviderRequestFailed("Failed to search track", 500))
    def test_search_error_aborts_before_adding(self, mock_search, sp, sleep):
        migrator = pm.PlaylistMigrator(MagicMock(return_value="tok"))

        with pytest.raises(ProviderRequestFailed):
            migrator.migrate(make_tracks(3), "pl1")

        assert mock_search.call_count == 1
        sp.playlist_add_items.assert_not_called()
        assert migrator.state == pm.FAILED

    @patch.object(pm, "search_track", side_effect=all_found)
    def test_token_fetched_once_per_batch(self, mock_search, sp, sleep):
        token_provider = MagicMock(return_value="tok")
        pm.PlaylistMigrator(token_provider).migrate(make_tracks(150), "pl1")
        assert token_provider.call_count == 2


# ---------------------------------------------------------------------------
# create_playlist() / get_current_user_id()
# ---------------------------------------------------------------------------

class TestCreatePlaylist:
    def test_creates_private_playlist_for_current_user(self, sp):
        sp.current_user.return_value = {"id": "user1"}
        sp.user_playlist_create.return_value = {"id": "new_pl"}

        new_id = pm.PlaylistMigrator(MagicMock(return_value="tok")).create_playlist("Mix", "desc")

        assert new_id == "new_pl"
        sp.user_playlist_create.assert_called_once_with("user1", "Mix", public=False, description="desc")

    def test_long_description_truncated(self, sp):
        sp.current_user.return_value = {"id": "user1"}
        sp.user_playlist_create.return_value = {"id": "new_pl"}

        pm.PlaylistMigrator(MagicMock(return_value="tok")).create_playlist("Mix", "x" * 400)

        description = sp.user_playlist_create.call_args.kwargs["description"]
        assert len(description) == 300
        assert description.endswith("...")

    def test_short_description_untouched(self):
        assert pm.truncate_description("x" * 300) == "x" * 300
        assert pm.truncate_description(None) is None

    def test_profile_failure(self, sp):
        sp.current_user.side_effect = spotipy.exceptions.SpotifyException(401, -1, "expired")

        with pytest.raises(ProviderRequestFailed, match="Failed to get user profile"):
            pm.PlaylistMigrator(MagicMock(return_value="tok")).create_playlist("Mix")
        sp.user_playlist_create.assert_not_called()

    def test_create_failure(self, sp):
        sp.current_user.return_value = {"id": "user1"}
        sp.user_playlist_create.side_effect = spotipy.exceptions.SpotifyException(403, -1, "forbidden")

        with pytest.raises(ProviderRequestFailed, match="Failed to create playlist"):
            pm.PlaylistMigrator(MagicMock(return_value="tok")).create_playlist("Mix")


# ---------------------------------------------------------------------------
# copy_playlist()
# ---------------------------------------------------------------------------

class TestCopyPlaylist:
    @patch.object(pm, "search_track", side_effect=all_found)
    def test_creates_then_migrates(self, mock_search, sp, sleep):
        sp.current_user.return_value = {"id": "user1"}
        sp.user_playlist_create.return_value = {"id": "new_pl"}
        source = SourcePlaylist(id="src", name="Road Trip", description="Album by Band", tracks=make_tracks(2))

        new_id = pm.PlaylistMigrator(MagicMock(return_value="tok")).copy_playlist(source)

        assert new_id == "new_pl"
        sp.user_playlist_create.assert_called_once_with("user1", "Road Trip", public=False, description="Album by Band")
        sp.playlist_add_items.assert_called_once_with("new_pl", [uri_for(t) for t in source.tracks])

    @patch.object(pm, "search_track", side_effect=all_found)
    def test_name_override(self, mock_search, sp, sleep):
        sp.current_user.return_value = {"id": "user1"}
        sp.user_playlist_create.return_value = {"id": "new_pl"}
        source = SourcePlaylist(id="src", name="Road Trip", tracks=make_tracks(1))

        pm.PlaylistMigrator(MagicMock(return_value="tok")).copy_playlist(source, name="Copy")

        assert sp.user_playlist_create.call_args.args == ("user1", "Copy")
        assert sp.user_playlist_create.call_args.kwargs["description"] == ""
