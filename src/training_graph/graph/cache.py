from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")


class EntityCache(Generic[V]):
    """Bounded LRU map from entity id to entity.

    Every access holds the lock; callers may share one cache across threads.
    A cache built with ``enabled=False`` never stores anything.
    """

    def __init__(self, max_size: int = 1000, *, enabled: bool = True):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.enabled = enabled
        self._items: "OrderedDict[str, V]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            value = self._items.get(key)
            if value is None:
                self._misses += 1
                return None
            self._items.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: str, value: V) -> None:
        if not self.enabled:
            return
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
                self._items[key] = value
                return
            while len(self._items) >= self.max_size:
                self._items.popitem(last=False)
                self._evictions += 1
            self._items[key] = value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def invalidate_where(self, predicate: Callable[[V], bool]) -> int:
        with self._lock:
            doomed = [k for k, v in self._items.items() if predicate(v)]
            for k in doomed:
                del self._items[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
