from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable


def derive_cache_key(host: str, path: str) -> str:
    """Canonical cache identity: always https, never the query string."""
    return f"https://{host}{path}"


@dataclass(frozen=True)
class CacheDirectives:
    cache_key: str
    ttl_s: int
    cache_everything: bool = True


@dataclass(frozen=True)
class CachedResponse:
    status_code: int
    headers: tuple[tuple[str, str], ...]
    body: bytes


class MemoryEdgeCache:
    """Bounded in-process key -> response store with per-entry TTL.

    Entries are keyed on the cache key plus the requested byte range so a
    partial response is only ever served back for the same ``Range``.
    Both the entry count and the summed body size are bounded; the least
    recently used entries go first.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        max_bytes: int = 256 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_entries = max(1, max_entries)
        self._max_bytes = max(0, max_bytes)
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[float, CachedResponse]] = OrderedDict()
        self._size = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size_bytes(self) -> int:
        return self._size

    def get(self, cache_key: str, byte_range: str | None = None) -> CachedResponse | None:
        ident = (cache_key, byte_range or "")
        entry = self._entries.get(ident)
        if entry is None:
            return None
        expires_at, response = entry
        if self._clock() >= expires_at:
            self._drop(ident)
            return None
        self._entries.move_to_end(ident)
        return response

    def put(
        self,
        cache_key: str,
        response: CachedResponse,
        ttl_s: int,
        byte_range: str | None = None,
    ) -> bool:
        if len(response.body) > self._max_bytes:
            return False
        ident = (cache_key, byte_range or "")
        self._drop(ident)
        self._entries[ident] = (self._clock() + ttl_s, response)
        self._size += len(response.body)
        while len(self._entries) > self._max_entries or self._size > self._max_bytes:
            oldest = next(iter(self._entries))
            self._drop(oldest)
        return True

    def _drop(self, ident: tuple[str, str]) -> None:
        entry = self._entries.pop(ident, None)
        if entry is not None:
            self._size -= len(entry[1].body)
