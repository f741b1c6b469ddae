"""In-memory, bounded log of completed analyses for the current session."""

from collections import deque
from typing import Deque, Optional, Tuple

from core.utils import HISTORY_CAPACITY, HistoryEntry


class SessionHistory:
    """Most-recent-first history; the oldest entry is evicted past capacity."""

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._entries: Deque[HistoryEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def append(self, entry: HistoryEntry):
        """Insert at the front, dropping the oldest entry when full."""
        self._entries.appendleft(entry)

    def list(self) -> Tuple[HistoryEntry, ...]:
        """Entries newest first."""
        return tuple(self._entries)

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def clear(self) -> int:
        """Delete all entries. Returns count deleted."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)
