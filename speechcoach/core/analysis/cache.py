"""Bounded in-memory cache of analysis results keyed by recording content."""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, Tuple, TypeVar

from ...logging import get_logger
from ..audio.postprocess import EncodedAudio

LOGGER = get_logger(__name__)

T = TypeVar("T")

CacheKey = Tuple[int, str, str]


def cache_key(audio: EncodedAudio) -> CacheKey:
    return (audio.size, audio.mime_type, hashlib.sha1(audio.data).hexdigest())


class AnalysisCache(Generic[T]):
    """LRU cache with per-entry expiry.

    Owned by whoever creates it; nothing in the package keeps a global
    instance. ``max_entries <= 0`` disables caching entirely.
    """

    def __init__(
        self,
        max_entries: int = 32,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, Tuple[float, T]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, audio: EncodedAudio) -> Optional[T]:
        key = cache_key(audio)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                LOGGER.debug("Analysis cache entry expired for %s byte recording", audio.size)
                return None
            self._entries.move_to_end(key)
            return value

    def put(self, audio: EncodedAudio, value: T) -> None:
        if self.max_entries <= 0:
            return
        key = cache_key(audio)
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def get_or_compute(self, audio: EncodedAudio, compute: Callable[[], T]) -> T:
        cached = self.get(audio)
        if cached is not None:
            LOGGER.debug("Analysis cache hit for %s byte recording", audio.size)
            return cached
        value = compute()
        self.put(audio, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["AnalysisCache", "cache_key"]
