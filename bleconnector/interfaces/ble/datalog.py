"""Received-data log."""

from threading import RLock
from typing import Iterator, List, Optional, Tuple


class ReceivedDataLog:
    """Append-only, ordered log of decoded payloads, bounded only by process lifetime."""

    def __init__(self):
        self._lock = RLock()
        self._entries: List[str] = []

    def append(self, text: str) -> None:
        with self._lock:
            self._entries.append(text)

    def entries(self) -> Tuple[str, ...]:
        """Return an immutable snapshot of all entries in arrival order."""
        with self._lock:
            return tuple(self._entries)

    @property
    def latest(self) -> Optional[str]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries())
