# capability_adapter/infra/cache.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

log = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    payload: V
    expires_at: float


class DiscoveryCache(Generic[V]):
    """
    Time-boxed store keyed by environment. Entries are replaced wholesale on
    ``set`` and dropped on ``invalidate``; expired entries read as misses.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            log.debug("%s: entry for %s expired", self.name, key)
            return None
        return entry.payload

    def set(self, key: Hashable, payload: V) -> CacheEntry[V]:
        entry = CacheEntry(payload=payload, expires_at=self._clock() + self.ttl_seconds)
        self._entries[key] = entry
        return entry

    def invalidate(self, key: Optional[Hashable] = None) -> int:
        if key is None:
            n = len(self._entries)
            self._entries.clear()
            return n
        return 1 if self._entries.pop(key, None) is not None else 0

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
