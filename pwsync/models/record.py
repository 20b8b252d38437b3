"""
Record — One colon-delimited line of a passwd-format file.
"""

from __future__ import annotations

from dataclasses import dataclass

FIELD_SEPARATOR = ":"


@dataclass(frozen=True)
class Record:
    """A single line with its terminator stripped."""

    line: str

    @property
    def key(self) -> str:
        """The substring before the first colon."""
        return self.line.partition(FIELD_SEPARATOR)[0]

    def matches(self, username: str) -> bool:
        # A line without a separator never matches, even if it equals username
        return self.line.startswith(username + FIELD_SEPARATOR)

    def __str__(self) -> str:
        return self.line
