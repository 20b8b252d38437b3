"""
Mirror Sync — Replace one user's record in the local passwd mirror.

The authoritative passwd file is scanned for the user's record, then the
mirror is copied record by record into an exclusively created staging
file with that record swapped in, and the staging file is renamed over
the mirror. The rename is the only mutation of the mirror, so readers
see either the old file or the new one, never a partial write.

A mirror that lacks the user is left alone: synchronization replaces,
it never inserts.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Optional, Tuple

from ..errors import CopyFailure, LookupFailure, MirrorAbsent, MirrorUnreadable, SyncError
from ..models.record import Record
from ..models.settings import SyncSettings
from .line_reader import LINE_TERMINATOR, LineReader, LineReadError
from .staging import ENCODING, ENCODING_ERRORS, StagingFile

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Progress of a single synchronization attempt."""
    IDLE = "idle"
    LOOKUP = "authoritative_lookup"
    FOUND = "found_record"
    STAGING = "staging_acquisition"
    STAGED = "staged"
    MERGING = "merge_copy"
    MERGED = "merged"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    FAILED = "failed"


class SyncOutcome(str, Enum):
    """How a successful attempt ended."""
    COMMITTED = "committed"   # Mirror rewritten
    UNCHANGED = "unchanged"   # User not in mirror, nothing written


def open_records(path: Path) -> IO[str]:
    """Open a passwd-format file so that every byte round-trips."""
    return path.open("r", encoding=ENCODING, errors=ENCODING_ERRORS, newline=LINE_TERMINATOR)


def find_record(path: Path, username: str) -> Record:
    """
    Return the first record in ``path`` belonging to ``username``.

    Raises:
        LookupFailure: The file can't be read or holds no such record
    """
    try:
        source = open_records(path)
    except OSError as e:
        raise LookupFailure(f"Can't read {path} so not updating local passwd file.", path) from e

    with source:
        try:
            for line in LineReader(source):
                record = Record(line)
                if record.matches(username):
                    return record
        except LineReadError as e:
            raise LookupFailure(f"Can't read {path} so not updating local passwd file.", path) from e

    raise LookupFailure(f"Can't find {username} in {path} so not updating local passwd file.", path)


class MirrorSynchronizer:
    """
    Copies one user's authoritative record into the local mirror.

    Usage:
        synchronizer = MirrorSynchronizer(SyncSettings(passwd_path=Path("/etc/shadow")))
        outcome = synchronizer.synchronize("alice")
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or SyncSettings()
        self.phase = SyncPhase.IDLE
        self._sleep = sleep
        self._username = ""

    def synchronize(self, username: str) -> SyncOutcome:
        """
        Make the mirror's record for ``username`` equal the authoritative one.

        Returns:
            COMMITTED if the mirror was rewritten, UNCHANGED if the user
            has no record in the mirror

        Raises:
            SyncError: Any fatal condition; the mirror is untouched and no
                staging file is left behind
        """
        if not username:
            raise LookupFailure("No username given so not updating local passwd file.")

        self._username = username
        self.phase = SyncPhase.IDLE
        try:
            return self._run(username)
        except SyncError:
            self._advance(SyncPhase.FAILED)
            raise

    def _advance(self, phase: SyncPhase) -> None:
        self.phase = phase
        logger.debug(
            f"{self._username}: {phase.value}",
            extra={"username": self._username, "phase": phase.value},
        )

    def _run(self, username: str) -> SyncOutcome:
        settings = self.settings
        mirror_path = settings.mirror_path

        self._advance(SyncPhase.LOOKUP)
        replacement = find_record(settings.passwd_path, username)
        self._advance(SyncPhase.FOUND)

        try:
            mirror = open_records(mirror_path)
        except FileNotFoundError as e:
            raise MirrorAbsent(f"{mirror_path} does not exist", mirror_path) from e
        except OSError as e:
            raise MirrorUnreadable(
                f"Can't read {mirror_path} so not updating local passwd file.", mirror_path
            ) from e

        self._advance(SyncPhase.STAGING)
        staging = StagingFile(
            settings.staging_path,
            mode=settings.effective_staging_mode,
            retry=settings.retry,
            sleep=self._sleep,
        )
        with mirror, staging:
            self._advance(SyncPhase.STAGED)

            self._advance(SyncPhase.MERGING)
            replaced, read_error, write_error = self._merge(
                mirror, staging.stream, username, replacement
            )
            mirror.close()
            self._advance(SyncPhase.MERGED)

            self._advance(SyncPhase.FINALIZING)
            staging.block_signals()

            if write_error is not None:
                staging.discard()
                raise CopyFailure(
                    f"Error writing {settings.staging_path} so not updating local passwd file.",
                    settings.staging_path,
                ) from write_error

            if not replaced:
                staging.discard()
                logger.info(
                    f"{username} not in {mirror_path}, leaving it unchanged",
                    extra={"username": username, "path": str(mirror_path)},
                )
                return SyncOutcome.UNCHANGED

            if read_error is not None:
                staging.discard()
                raise CopyFailure(
                    f"Error copying {mirror_path} to {settings.staging_path} "
                    f"so not updating local passwd file.",
                    mirror_path,
                ) from read_error

            staging.finish()
            logger.debug(
                f"Renaming {settings.staging_path} onto {mirror_path}",
                extra={"username": username, "path": str(mirror_path)},
            )
            staging.commit(mirror_path)

        self._advance(SyncPhase.COMMITTED)
        return SyncOutcome.COMMITTED

    @staticmethod
    def _merge(
        source: IO[str],
        sink: IO[str],
        username: str,
        replacement: Record,
    ) -> Tuple[bool, Optional[Exception], Optional[OSError]]:
        """
        Copy ``source`` into ``sink`` swapping in ``replacement``.

        Only the first matching record is replaced. Every record is written
        with exactly one terminator. A read error stops the copy. After a
        write error nothing more is written, but the source is still scanned
        so the replacement flag stays accurate.

        Returns:
            (replaced, read_error, write_error)
        """
        replaced = False
        write_error: Optional[OSError] = None
        try:
            for line in LineReader(source):
                record = Record(line)
                if not replaced and record.matches(username):
                    record = replacement
                    replaced = True
                if write_error is None:
                    try:
                        sink.write(record.line + LINE_TERMINATOR)
                    except OSError as e:
                        write_error = e
        except LineReadError as e:
            return replaced, e, write_error
        return replaced, None, write_error


def synchronize(username: str, settings: Optional[SyncSettings] = None) -> SyncOutcome:
    """Synchronize ``username`` into the local mirror using ``settings``."""
    return MirrorSynchronizer(settings).synchronize(username)
