"""
Staging File — Exclusively created temp file with scoped cleanup.

The staging file doubles as the writers' lock: it is created with
O_CREAT|O_EXCL next to the mirror, so only one process can hold it.
While it exists, SIGHUP/SIGINT/SIGQUIT/SIGTERM remove it before the
process dies. Creation and handler installation happen with those
signals blocked, so no signal can land between the two.

The guard is armed on creation and disarmed only by ``commit()`` (the
rename succeeded) or ``discard()``. Leaving the ``with`` block while still
armed discards the file.

## Usage

    with StagingFile(settings.staging_path, mode=0o600) as staging:
        staging.stream.write("alice:x:1000:1000::/home/alice:/bin/sh\\n")
        staging.finish()
        staging.commit(settings.mirror_path)
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import threading
import time
from pathlib import Path
from typing import IO, Any, Callable, Dict, Optional, Set

from ..errors import CommitFailure, CopyFailure, SignalAbort, StagingContention, StagingIOFailure
from ..models.settings import MODE_PUBLIC, RetryPolicy

logger = logging.getLogger(__name__)

CLEANUP_SIGNALS = frozenset({signal.SIGHUP, signal.SIGINT, signal.SIGQUIT, signal.SIGTERM})

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


@contextlib.contextmanager
def signals_blocked(signals: Set[int] = CLEANUP_SIGNALS):
    """Block ``signals`` for the duration of the block, then restore the mask."""
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class StagingFile:
    """Scoped owner of the exclusively created staging file."""

    def __init__(
        self,
        path: Path,
        mode: int = MODE_PUBLIC,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.path = Path(path)
        self.mode = mode
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

        self.stream: Optional[IO[str]] = None
        self._fd = -1
        self._armed = False
        self._previous_handlers: Dict[int, Any] = {}
        self._saved_mask: Optional[Set[int]] = None

    @property
    def armed(self) -> bool:
        """True while this guard still owes the removal of the file."""
        return self._armed

    def __enter__(self) -> "StagingFile":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Acquisition ──────────────────────────────────────────────

    def acquire(self) -> IO[str]:
        """
        Create the staging file, retrying while another process holds it.

        Raises:
            StagingContention: The file existed for every attempt
            StagingIOFailure: Creation failed for any other reason
        """
        if threading.current_thread() is not threading.main_thread():
            raise StagingIOFailure(
                f"Can't install signal handlers outside the main thread so not creating {self.path}.",
                self.path,
            )

        try:
            self._create()
            self.stream = os.fdopen(
                self._fd, "w", encoding=ENCODING, errors=ENCODING_ERRORS, newline="\n"
            )
        except OSError as e:
            self.close()
            raise StagingIOFailure(
                f"Can't open {self.path} for writing so not updating local passwd file.",
                self.path,
            ) from e
        except BaseException:
            # Includes SignalAbort raised as the mask comes off
            self.close()
            raise

        logger.debug(f"Staging file {self.path} created", extra={"path": str(self.path)})
        return self.stream

    def _create(self) -> None:
        for attempt in range(1, self.retry.max_attempts + 1):
            with signals_blocked():
                try:
                    self._fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self.mode)
                except FileExistsError:
                    pass
                except OSError as e:
                    raise StagingIOFailure(
                        f"Can't open {self.path} for writing so not updating local passwd file.",
                        self.path,
                    ) from e
                else:
                    self._armed = True
                    self._install_handlers()

            if self._fd != -1:
                return

            logger.info(
                f"{self.path} is held by another process "
                f"(attempt {attempt}/{self.retry.max_attempts})",
                extra={"path": str(self.path)},
            )
            if attempt < self.retry.max_attempts:
                self._sleep(self.retry.delay_seconds)

        raise StagingContention(
            f"Can't open {self.path} for writing so not updating local passwd file.",
            self.path,
            attempts=self.retry.max_attempts,
        )

    # ── Signal handling ──────────────────────────────────────────

    def _install_handlers(self) -> None:
        for signum in CLEANUP_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_handlers(self) -> None:
        for signum, previous in self._previous_handlers.items():
            # None means the handler was installed outside Python
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _on_signal(self, signum: int, frame: Any) -> None:
        self._remove()
        raise SignalAbort(signum, self.path)

    def block_signals(self) -> None:
        """Block the cleanup signals until the guard is closed."""
        if self._saved_mask is None:
            self._saved_mask = signal.pthread_sigmask(signal.SIG_BLOCK, CLEANUP_SIGNALS)

    # ── Retirement ───────────────────────────────────────────────

    def finish(self) -> None:
        """
        Flush, fsync and close the write stream.

        Raises:
            CopyFailure: Any write error surfaced while draining the stream
        """
        if self.stream is None or self.stream.closed:
            return
        try:
            self.stream.flush()
            os.fsync(self.stream.fileno())
            self.stream.close()
        except OSError as e:
            raise CopyFailure(
                f"Error writing {self.path} so not updating local passwd file.",
                self.path,
            ) from e

    def commit(self, target: Path) -> None:
        """
        Atomically rename the staging file onto ``target``.

        Raises:
            CommitFailure: The rename failed; the staging file is removed
        """
        self.block_signals()
        self.finish()
        try:
            os.replace(self.path, target)
        except OSError as e:
            self._remove()
            raise CommitFailure(
                f"Error renaming {self.path} to {target} so not updating local passwd file.",
                self.path,
            ) from e
        self._armed = False
        logger.debug(f"Staging file committed to {target}", extra={"path": str(target)})

    def discard(self) -> None:
        """Remove the staging file without touching the mirror."""
        self.block_signals()
        self._remove()

    def _remove(self) -> None:
        self._armed = False
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {self.path}: {e}", extra={"path": str(self.path)})

    def close(self) -> None:
        """
        Release the stream and the file, then restore handlers and mask.

        Cleanup signals that arrived while finalization held them blocked
        are dropped: the outcome is already decided by then.
        """
        if self.stream is not None:
            if not self.stream.closed:
                with contextlib.suppress(OSError):
                    self.stream.close()
        elif self._fd != -1:
            with contextlib.suppress(OSError):
                os.close(self._fd)
        self._fd = -1
        if self._armed:
            self.discard()
        if self._saved_mask is not None:
            self._drop_pending_signals()
        self._restore_handlers()
        if self._saved_mask is not None:
            signal.pthread_sigmask(signal.SIG_SETMASK, self._saved_mask)
            self._saved_mask = None

    def _drop_pending_signals(self) -> None:
        for signum in sorted(signal.sigpending() & CLEANUP_SIGNALS):
            # Already pending and blocked, so this returns at once
            signal.sigwait({signum})
            logger.warning(
                f"Ignoring {signal.Signals(signum).name} received while finalizing {self.path}",
                extra={"path": str(self.path)},
            )
