"""Pending/visited URL tracking with permanent dedup."""

import threading
from collections import OrderedDict
from enum import Enum
from typing import Dict, FrozenSet, List, Protocol


class UrlState(Enum):
    PENDING = "pending"
    VISITED = "visited"


class Frontier(Protocol):
    """Operations the spider needs from a link store. All must be thread safe."""

    def peek_batch(self, n: int) -> List[str]: ...

    def mark_visited(self, url: str) -> None: ...

    def add(self, url: str) -> bool: ...

    def has_pending(self) -> bool: ...


class MemoryFrontier:
    """In-memory frontier guarded by a single lock.

    Every known URL maps to exactly one ``UrlState``, so a URL can never be
    both pending and visited. Pending URLs are additionally kept in insertion
    order so batches are drawn FIFO.
    """

    def __init__(self) -> None:
        self._states: Dict[str, UrlState] = {}
        self._pending: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def peek_batch(self, n: int) -> List[str]:
        if n <= 0:
            return []
        batch: List[str] = []
        with self._lock:
            for url in self._pending:
                if len(batch) >= n:
                    break
                batch.append(url)
        return batch

    def mark_visited(self, url: str) -> None:
        with self._lock:
            self._pending.pop(url, None)
            self._states[url] = UrlState.VISITED

    def add(self, url: str) -> bool:
        with self._lock:
            if url in self._states:
                return False
            self._states[url] = UrlState.PENDING
            self._pending[url] = None
            return True

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def state_of(self, url: str) -> "UrlState | None":
        with self._lock:
            return self._states.get(url)

    def pending_urls(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def visited_urls(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(u for u, s in self._states.items() if s is UrlState.VISITED)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
