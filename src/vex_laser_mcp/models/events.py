"""Bounded console log of inbound and outbound activity."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator

from ..config import LOG_CAPACITY


class LogCategory(str, Enum):
    """Console entry categories."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    RAW = "raw"  # structured device data echoed verbatim


@dataclass
class LogEntry:
    """A single console line."""

    message: str
    category: LogCategory = LogCategory.INFO
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "message": self.message,
            "category": self.category.value,
        }

    def __repr__(self) -> str:
        return f"LogEntry({self.category.value}: {self.message!r})"


class EventLog:
    """Append-only FIFO holding at most ``capacity`` entries.

    The oldest entry is evicted when a new one arrives on a full log.
    Nothing in the control path reads from it.
    """

    def __init__(self, capacity: int = LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"Log capacity must be positive, got {capacity}")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def append(
        self, message: str, category: LogCategory = LogCategory.INFO
    ) -> LogEntry:
        entry = LogEntry(message=message, category=LogCategory(category))
        self._entries.append(entry)
        return entry

    def entries(self) -> list[LogEntry]:
        """Snapshot of the log, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries())
