"""Shared logging setup for the playlist copier.

Every module logs through a child of the "playlist_copier" logger, so the
handlers live in one place: console (INFO, bare message), a per-session
latest.log and a daily rotating copier.log (both DEBUG).

Tokens and authorization codes must never reach a handler; every handler
carries a RedactTokens filter.
"""

import logging
import os
import re
from logging.handlers import TimedRotatingFileHandler

from config import LOG_DIR

ROOT_LOGGER = "playlist_copier"

LATEST_LOG = os.path.join(LOG_DIR, "latest.log")
DAILY_LOG = os.path.join(LOG_DIR, "copier.log")

_FILE_FMT = logging.Formatter(
    "%(asctime)s [%(name)s] %(levelname)-5s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FMT = logging.Formatter("%(message)s")

_SECRET_RE = re.compile(r"(Bearer\s+|(?:access_token|refresh_token|code)=)[\w\-.~+/]+")

_console = None


class RedactTokens(logging.Filter):
    """Mask bearer tokens and OAuth query values in the formatted message."""

    def filter(self, record):
        msg = record.getMessage()
        redacted = _SECRET_RE.sub(r"\1***", msg)
        if redacted != msg:
            record.msg = redacted
            record.args = None
        return True


def _root():
    """Configure the parent logger once; later calls return it as is."""
    global _console
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    _console = logging.StreamHandler()
    _console.setLevel(logging.INFO)
    _console.setFormatter(_CONSOLE_FMT)
    root.addHandler(_console)

    os.makedirs(LOG_DIR, exist_ok=True)

    latest = logging.FileHandler(LATEST_LOG, mode="a", encoding="utf-8")
    latest.setLevel(logging.DEBUG)
    latest.setFormatter(_FILE_FMT)
    root.addHandler(latest)

    daily = TimedRotatingFileHandler(DAILY_LOG, when="midnight", backupCount=7, encoding="utf-8")
    daily.setLevel(logging.DEBUG)
    daily.setFormatter(_FILE_FMT)
    daily.namer = lambda name: name.replace(".log.", ".") + ".log"
    root.addHandler(daily)

    redact = RedactTokens()
    for handler in root.handlers:
        handler.addFilter(redact)

    return root


def get_logger(name):
    """Return playlist_copier.<name>; records go to the shared handlers."""
    _root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_verbose(verbose=True):
    """Show DEBUG lines (per-track match scores, batch commits) on the console too."""
    _root()
    _console.setLevel(logging.DEBUG if verbose else logging.INFO)


def reset_latest():
    """Truncate latest.log at session start."""
    _root()
    open(LATEST_LOG, "w").close()
