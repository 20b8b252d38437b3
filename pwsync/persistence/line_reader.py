"""
Line Reader — Read one record at a time into a growable buffer.

The buffer starts at ``initial_capacity`` characters and doubles each
time a line does not fit, so arbitrarily long lines come back intact.
A single reader is reused for every line of a stream; it is forward-only
and cannot resume a line it failed halfway through.

## Usage

    with path.open("r", encoding="utf-8", errors="surrogateescape", newline="\\n") as f:
        reader = LineReader(f)
        while (line := reader.read_line()) is not None:
            ...
"""

from __future__ import annotations

import logging
from typing import IO, Iterator, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 128
LINE_TERMINATOR = "\n"


class LineReadError(Exception):
    """Raised when the underlying stream fails mid-read."""


class LineReader:
    """
    Sequential line producer over a text stream.

    ``read_line`` has three outcomes: a line (terminator stripped), ``None``
    at a clean end of stream, or ``LineReadError`` on an I/O failure.
    """

    def __init__(self, stream: IO[str], initial_capacity: int = DEFAULT_CAPACITY):
        if initial_capacity < 1:
            raise ValueError(f"initial_capacity must be positive, got {initial_capacity}")
        self._stream = stream
        self._initial_capacity = initial_capacity
        self._chunks: List[str] = []
        self.capacity = 0

    def read_line(self) -> Optional[str]:
        """Read the next line, or return None at end of stream."""
        if self.capacity == 0:
            self.capacity = self._initial_capacity

        self._chunks.clear()
        filled = 0
        while True:
            try:
                chunk = self._stream.readline(self.capacity - filled)
            except (OSError, ValueError) as e:
                raise LineReadError(f"Read failed: {e}") from e

            if not chunk:
                # Unterminated last line still counts as a line
                if filled:
                    return "".join(self._chunks)
                return None

            self._chunks.append(chunk)
            filled += len(chunk)
            if chunk.endswith(LINE_TERMINATOR):
                return "".join(self._chunks)[: -len(LINE_TERMINATOR)]

            if filled >= self.capacity:
                self.capacity *= 2
                logger.debug(f"Line buffer grown to {self.capacity}")

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self.read_line()
            if line is None:
                return
            yield line
