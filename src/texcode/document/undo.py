from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from texcode.logger import logger

DEFAULT_UNDO_CAPACITY = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UndoEntry:
    """Document text as it was before a change, plus what the change was."""

    snapshot_text: str
    label: str
    timestamp: datetime = field(default_factory=utcnow)


class UndoLog:
    """
    Bounded stack of UndoEntry values. Pushing past capacity evicts the
    oldest entry; pop always returns the newest one.
    """

    def __init__(self, capacity: int = DEFAULT_UNDO_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"Undo capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._entries: List[UndoEntry] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, entry: UndoEntry) -> None:
        self._entries.append(entry)
        overflow = len(self._entries) - self._capacity
        if overflow > 0:
            logger.debug("Undo history full, evicting oldest", evicted=overflow)
            del self._entries[0:overflow]

    def push_snapshot(self, snapshot_text: str, label: str) -> UndoEntry:
        entry = UndoEntry(snapshot_text=snapshot_text, label=label)
        self.push(entry)
        return entry

    def pop(self) -> Optional[UndoEntry]:
        if not self._entries:
            return None
        return self._entries.pop()

    def peek(self) -> Optional[UndoEntry]:
        if not self._entries:
            return None
        return self._entries[-1]

    def can_undo(self) -> bool:
        return bool(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[UndoEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
