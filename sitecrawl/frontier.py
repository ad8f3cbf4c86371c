import threading
from collections import deque
from typing import Deque, Optional, Set

from .parsing import UrlTools
from .types import FrontierEntry


class Frontier:
    """FIFO queue of pending URLs plus the set of every URL ever scheduled.

    A URL is marked visited when it is pushed, not when it is fetched, so two
    pages linking to the same target only schedule it once.
    """

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self._queue: Deque[FrontierEntry] = deque()
        self._visited: Set[str] = set()
        self._lock = threading.Lock()

    def push(self, url: str, depth: int) -> bool:
        if depth < 0 or depth > self.max_depth:
            return False
        normalized = UrlTools.normalize(url)
        with self._lock:
            if normalized in self._visited:
                return False
            self._visited.add(normalized)
            self._queue.append(FrontierEntry(normalized, depth))
        return True

    def pop(self) -> Optional[FrontierEntry]:
        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def is_empty(self) -> bool:
        with self._lock:
            return not self._queue

    def seen(self, url: str) -> bool:
        with self._lock:
            return UrlTools.normalize(url) in self._visited

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
