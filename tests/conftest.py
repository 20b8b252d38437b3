"""
Shared fixtures for synchronizer tests.

Provides a temporary passwd file and its .local mirror so tests never
touch the real /etc files.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pwsync.models.settings import RetryPolicy, SyncSettings

PASSWD_LINES = [
    "root:x:0:0:root:/root:/bin/bash",
    "alice:X1:1000:1000:Alice:/home/alice:/bin/bash",
    "bob:Y1:1001:1001:Bob:/home/bob:/bin/sh",
]

MIRROR_LINES = [
    "alice:X0:1000:1000:Alice:/home/alice:/bin/bash",
    "carol:Z0:1002:1002:Carol:/home/carol:/bin/zsh",
]


def write_lines(path: Path, lines: list) -> None:
    """Helper to write a passwd-format file with trailing newlines."""
    path.write_bytes("".join(line + "\n" for line in lines).encode("utf-8"))


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers bound to streams a previous test closed."""
    yield
    logger = logging.getLogger("pwsync")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def passwd_file(tmp_path: Path) -> Path:
    """Authoritative passwd file."""
    path = tmp_path / "passwd"
    write_lines(path, PASSWD_LINES)
    return path


@pytest.fixture
def mirror_file(passwd_file: Path) -> Path:
    """Local mirror next to the passwd file."""
    path = passwd_file.with_name("passwd.local")
    write_lines(path, MIRROR_LINES)
    return path


@pytest.fixture
def staging_file(mirror_file: Path) -> Path:
    """Where the staging file would be created."""
    return mirror_file.with_name("passwd.local.tmp")


@pytest.fixture
def settings(passwd_file: Path) -> SyncSettings:
    """Settings pointing at the temporary files, with no retry delay."""
    return SyncSettings(
        passwd_path=passwd_file,
        retry=RetryPolicy(max_attempts=3, delay_seconds=0),
    )
