"""Newline framing for the device's serial text stream.

The device writes one message per line::

    {"type":"heartbeat","uptime_ms":120034,...}\\n
    Laser State: ON, Laser Brightness: 40%\\r\\n

Bytes arrive in arbitrary chunks. A line is only emitted once its
terminating ``\\n`` has been received; the unterminated tail stays in the
buffer until the next chunk. Emitted lines are stripped, so a trailing
``\\r`` disappears, and blank lines are dropped.
"""

from __future__ import annotations

import codecs
from typing import Callable, Iterator

DELIMITER = "\n"
ENCODING = "utf-8"


class LineFramer:
    """Accumulates chunks and splits them into complete lines."""

    def __init__(self, encoding: str = ENCODING) -> None:
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last delimiter."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return every line it completed, in order."""
        self._buffer += self._decoder.decode(chunk)
        if DELIMITER not in self._buffer:
            return []

        *complete, self._buffer = self._buffer.split(DELIMITER)
        lines = []
        for segment in complete:
            line = segment.strip()
            if line:
                lines.append(line)
        return lines

    def reset(self) -> None:
        """Drop any partial line, e.g. after reconnecting."""
        self._decoder.reset()
        self._buffer = ""


def iter_frames(
    read: Callable[[], bytes | None],
    framer: LineFramer | None = None,
) -> Iterator[str]:
    """Yield lines from successive ``read()`` chunks.

    Stops when ``read()`` returns ``None`` (end of stream or cancelled).
    """
    framer = framer if framer is not None else LineFramer()
    while True:
        chunk = read()
        if chunk is None:
            return
        yield from framer.feed(chunk)
