"""
Settings Models — Pydantic schemas for synchronizer configuration.

The mirror and staging paths are never configured directly: they are
derived from the authoritative passwd path plus fixed suffixes, so every
process synchronizing the same source contends on the same staging path.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

# Candidate authoritative sources, most specific first
PASSWD_CANDIDATES = (
    Path("/etc/master.passwd"),
    Path("/etc/shadow"),
    Path("/etc/passwd"),
)

# Formats holding password hashes; their staging files must not be world-readable
RESTRICTED_FORMATS = frozenset({"master.passwd", "shadow"})

MODE_RESTRICTED = 0o600
MODE_PUBLIC = 0o644


def default_passwd_path() -> Path:
    """Pick the platform's authoritative passwd file."""
    for candidate in PASSWD_CANDIDATES[:-1]:
        if candidate.exists():
            return candidate
    return PASSWD_CANDIDATES[-1]


class RetryPolicy(BaseModel):
    """Fixed-delay retry for staging file contention."""

    max_attempts: int = Field(default=10, ge=1)
    delay_seconds: float = Field(default=1.0, ge=0)


class SyncSettings(BaseModel):
    """Where to read from, where to mirror to, and how to stage."""

    passwd_path: Path = Field(default_factory=default_passwd_path)
    local_suffix: str = Field(default=".local", min_length=1)
    tmp_suffix: str = Field(default=".tmp", min_length=1)
    # None derives the mode from the passwd format
    staging_mode: Optional[int] = Field(default=None, ge=0, le=0o777)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @property
    def mirror_path(self) -> Path:
        return Path(os.fspath(self.passwd_path) + self.local_suffix)

    @property
    def staging_path(self) -> Path:
        return Path(os.fspath(self.mirror_path) + self.tmp_suffix)

    @property
    def restricted_format(self) -> bool:
        return self.passwd_path.name in RESTRICTED_FORMATS

    @property
    def effective_staging_mode(self) -> int:
        if self.staging_mode is not None:
            return self.staging_mode
        return MODE_RESTRICTED if self.restricted_format else MODE_PUBLIC
