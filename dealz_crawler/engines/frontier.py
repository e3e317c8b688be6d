from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, FrozenSet, Optional, Set

from ..utils.parsing import canonicalize_url


class FrontierOrder(str, Enum):
    FIFO = "fifo"  # breadth-first
    LIFO = "lifo"  # depth-first, stack behaviour


class EnqueueResult(str, Enum):
    QUEUED = "queued"
    ALREADY_VISITED = "already-visited"
    NO_MATCH = "no-match"
    MISSING_URL = "missing-url"

    @property
    def queued(self) -> bool:
        return self is EnqueueResult.QUEUED


@dataclass
class FrontierEntry:
    url: str  # canonical
    raw_url: str
    attempts: int = 0


class Frontier:
    """
    Pending-URL store with dedup against a visited set.

    A URL is marked visited the moment it is accepted, so the check and the
    mark happen under one lock and no two workers can both claim it.
    """

    def __init__(
        self,
        accepts: Callable[[str], bool] | None = None,
        order: FrontierOrder | str = FrontierOrder.FIFO,
    ) -> None:
        self._accepts = accepts or (lambda url: True)
        self.order = FrontierOrder(order)
        self._lock = threading.Lock()
        self._pending: Deque[FrontierEntry] = deque()
        self._visited: Set[str] = set()
        self._queued: Set[str] = set()

    def enqueue(self, url: str) -> EnqueueResult:
        canonical = canonicalize_url(url)
        if not canonical:
            return EnqueueResult.MISSING_URL
        if not self._accepts(canonical):
            return EnqueueResult.NO_MATCH
        with self._lock:
            if canonical in self._visited:
                return EnqueueResult.ALREADY_VISITED
            self._visited.add(canonical)
            self._queued.add(canonical)
            self._pending.append(FrontierEntry(url=canonical, raw_url=url))
        return EnqueueResult.QUEUED

    def dequeue(self) -> Optional[FrontierEntry]:
        with self._lock:
            if not self._pending:
                return None
            if self.order is FrontierOrder.LIFO:
                entry = self._pending.pop()
            else:
                entry = self._pending.popleft()
            self._queued.discard(entry.url)
            return entry

    def size(self) -> int:
        with self._lock:
            return len(self._pending)

    __len__ = size

    def has_visited(self, url: str) -> bool:
        with self._lock:
            return canonicalize_url(url) in self._visited

    def is_pending(self, url: str) -> bool:
        """Accepted but not yet handed to a worker."""
        with self._lock:
            return canonicalize_url(url) in self._queued

    @property
    def visited(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._visited)
