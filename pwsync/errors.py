"""
Errors — Failure taxonomy for mirror synchronization.

Every fatal condition of a synchronization attempt is raised as a
subclass of ``SyncError``. The library never exits the process itself;
the CLI catches ``SyncError``, prints a one-line diagnostic and exits 1.

## Usage

    from pwsync.errors import SyncError

    try:
        synchronize("alice")
    except SyncError as e:
        if not e.silent:
            print(e)
        sys.exit(1)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class SyncError(Exception):
    """Base class for all synchronization failures."""

    # Silent errors terminate without a diagnostic
    silent = False

    def __init__(self, message: str, path: Optional[Path] = None):
        self.message = message
        self.path = path
        super().__init__(message)


class LookupFailure(SyncError):
    """The authoritative record could not be located."""


class MirrorUnreadable(LookupFailure):
    """The mirror file exists but cannot be opened."""


class MirrorAbsent(SyncError):
    """The mirror file does not exist, so there is nothing to mirror into."""

    silent = True


class StagingContention(SyncError):
    """Another process held the staging file for every retry attempt."""

    def __init__(self, message: str, path: Optional[Path] = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message, path)


class StagingIOFailure(SyncError):
    """The staging file could not be created for a reason other than contention."""


class CopyFailure(SyncError):
    """Reading the mirror or writing the staging file failed mid-copy."""


class CommitFailure(SyncError):
    """Renaming the staging file over the mirror failed."""


class SignalAbort(SyncError):
    """A termination signal arrived while the staging file existed."""

    def __init__(self, signum: int, path: Optional[Path] = None):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}", path)


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass
