"""
Result cache protocol and in-process implementations.

The cache only stores entries; deciding whether an entry is still fresh is
left to the caller (see CacheEntry.is_valid).
"""

import threading
from typing import Dict, Optional, Protocol, Tuple

from ..types import CacheEntry


class ResultCache(Protocol):
    """Keyed store of processed (directory, workspace) pairs."""

    def get(self, dir: str, workspace: str) -> Optional[CacheEntry]:
        ...

    def put(self, dir: str, workspace: str, entry: CacheEntry) -> None:
        ...


class NoopCache:
    """Cache used when no durable store is configured: always misses."""

    def get(self, dir: str, workspace: str) -> Optional[CacheEntry]:
        return None

    def put(self, dir: str, workspace: str, entry: CacheEntry) -> None:
        return None


class MemoryCache:
    """Thread-safe in-process cache. Entries live as long as the object."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}

    def get(self, dir: str, workspace: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get((dir, workspace))

    def put(self, dir: str, workspace: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[(dir, workspace)] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
