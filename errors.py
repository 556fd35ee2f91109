"""Error kinds raised across the copier.

Everything derives from MigrationError so the CLI can tell "failed" from a crash.
"""


class MigrationError(Exception):
    pass


class AuthRequired(MigrationError):
    """No usable token is cached; an interactive authorization was started."""


class AuthCancelled(MigrationError):
    """The user closed the authorization surface without completing it."""


class AuthError(MigrationError):
    """The authorization callback could not be trusted (e.g. state mismatch)."""


class ProviderRequestFailed(MigrationError):
    """A Spotify call returned non-2xx or never reached the server."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status

    def __str__(self):
        msg = super().__str__()
        if self.status is not None:
            return f"{msg} (HTTP {self.status})"
        return msg


class ResourceNotFound(ProviderRequestFailed):
    """Neither the playlist nor the album with the given id could be read."""
