"""
pwsync — Mirror a user's passwd entry into the local passwd file.
"""

from .models.record import Record
from .models.settings import RetryPolicy, SyncSettings
from .persistence.line_reader import LineReader, LineReadError
from .persistence.mirror_sync import MirrorSynchronizer, SyncOutcome, SyncPhase, synchronize
from .persistence.staging import StagingFile

__version__ = "0.1.0"

__all__ = [
    "LineReader",
    "LineReadError",
    "MirrorSynchronizer",
    "Record",
    "RetryPolicy",
    "StagingFile",
    "SyncOutcome",
    "SyncPhase",
    "SyncSettings",
    "synchronize",
]
