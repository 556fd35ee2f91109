"""Plain data carried between the loader, matcher and migrator.

Spotify returns two different shapes for things we treat as a playlist:
a real playlist (items wrap a "track") and an album (items are bare
simplified tracks without album info). SourcePlaylist.from_playlist and
SourcePlaylist.from_album are the only places that know the difference.
"""

from dataclasses import dataclass, field
from typing import Optional

PLAYLIST = "playlist"
ALBUM = "album"


@dataclass(frozen=True)
class Artist:
    name: str


@dataclass(frozen=True)
class Album:
    id: str
    name: str
    images: tuple = ()


@dataclass(frozen=True)
class GenericTrack:
    name: str
    artists: tuple = ()
    album: Optional[Album] = None
    uri: Optional[str] = None

    @property
    def primary_artist(self):
        return self.artists[0].name if self.artists else ""

    @classmethod
    def from_spotify(cls, item, album=None):
        if album is None and item.get("album"):
            album = album_from_spotify(item["album"])
        return cls(
            name=item["name"],
            artists=tuple(Artist(a["name"]) for a in item.get("artists") or []),
            album=album,
            uri=item.get("uri"),
        )


def album_from_spotify(data):
    return Album(
        id=data.get("id", ""),
        name=data.get("name", ""),
        images=tuple(img["url"] for img in data.get("images") or []),
    )


@dataclass
class SourcePlaylist:
    id: str
    name: str
    description: Optional[str] = None
    images: list = field(default_factory=list)
    tracks: list = field(default_factory=list)
    kind: str = PLAYLIST
    uri: Optional[str] = None

    @classmethod
    def from_playlist(cls, data, items):
        """Normalize a playlist object plus all of its (paged) items.

        Local files come back with a null track and episodes are not
        searchable as tracks, so both are dropped here.
        """
        tracks = []
        for entry in items:
            track = entry.get("track")
            if not track or track.get("type", "track") != "track":
                continue
            tracks.append(GenericTrack.from_spotify(track))
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or None,
            images=[img["url"] for img in data.get("images") or []],
            tracks=tracks,
            kind=PLAYLIST,
            uri=data.get("uri"),
        )

    @classmethod
    def from_album(cls, data, items):
        album = album_from_spotify(data)
        artists = data.get("artists") or []
        description = f"Album by {artists[0]['name']}" if artists else None
        return cls(
            id=data["id"],
            name=data["name"],
            description=description,
            images=list(album.images),
            tracks=[GenericTrack.from_spotify(item, album=album) for item in items if item],
            kind=ALBUM,
            uri=data.get("uri"),
        )


@dataclass(frozen=True)
class MigrationProgress:
    message: str
    percent_complete: float
    phase: str
    current_track: Optional[GenericTrack] = None


@dataclass(frozen=True)
class TokenRecord:
    """Access + refresh token pair. expires_at is milliseconds since the epoch."""
    access_token: str
    refresh_token: str
    expires_at: int

    def is_valid(self, now_ms):
        return bool(self.access_token) and now_ms < self.expires_at

    @classmethod
    def from_token_response(cls, data, issued_at_ms, previous_refresh_token=""):
        # Spotify does not always rotate the refresh token; keep the old one then
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=issued_at_ms + int(data["expires_in"]) * 1000,
        )
