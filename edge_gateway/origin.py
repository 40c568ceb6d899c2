from __future__ import annotations

import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Mapping, Protocol

import httpx

from edge_gateway.cache import CacheDirectives, CachedResponse, MemoryEdgeCache
from edge_gateway.observability import increment, log_event, observe_ms

CHUNK_SIZE = 64 * 1024


class OriginUnavailable(Exception):
    """The storage origin could not be reached."""


@dataclass(frozen=True)
class OriginResponse:
    status_code: int
    headers: tuple[tuple[str, str], ...]
    chunks: AsyncIterator[bytes]
    # Releases the origin connection even if the body is never iterated.
    close: Callable[[], Awaitable[None]] | None = None


async def iter_body(body: bytes, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    for start in range(0, len(body), chunk_size):
        yield body[start : start + chunk_size]


def from_cached(cached: CachedResponse) -> OriginResponse:
    return OriginResponse(
        status_code=cached.status_code, headers=cached.headers, chunks=iter_body(cached.body)
    )


class OriginFetcher(Protocol):
    async def fetch(
        self, url: str, headers: Mapping[str, str], directives: CacheDirectives
    ) -> OriginResponse: ...


def declared_length(headers: httpx.Headers) -> int | None:
    raw = headers.get("content-length")
    if raw is None or not raw.isdigit():
        return None
    return int(raw)


class CachingOriginClient:
    """GETs objects from the storage origin through the edge cache.

    Bodies are relayed chunk by chunk as the origin sends them. A copy is
    kept for the cache only when the origin declares a ``Content-Length``
    no larger than ``max_object_bytes``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: MemoryEdgeCache,
        max_object_bytes: int = 8 * 1024 * 1024,
    ) -> None:
        self._client = client
        self._cache = cache
        self._max_object_bytes = max_object_bytes

    async def fetch(
        self, url: str, headers: Mapping[str, str], directives: CacheDirectives
    ) -> OriginResponse:
        byte_range = headers.get("Range")
        cached = self._cache.get(directives.cache_key, byte_range)
        if cached is not None:
            increment("cache.hit")
            log_event("cache.hit", cache_key=directives.cache_key, range=byte_range)
            return from_cached(cached)

        increment("cache.miss")
        log_event("cache.miss", cache_key=directives.cache_key, range=byte_range)
        t0 = time.perf_counter()
        request = self._client.build_request("GET", url, headers=dict(headers))
        try:
            resp = await self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            increment("origin.unavailable")
            log_event(
                "origin.unavailable", kind="transport", reason=type(exc).__name__, url=url
            )
            raise OriginUnavailable(str(exc)) from exc
        finally:
            observe_ms("origin.fetch.latency_ms", (time.perf_counter() - t0) * 1000.0)

        length = declared_length(resp.headers)
        reason = None
        if not (directives.cache_everything or resp.is_success):
            reason = "status"
        elif length is None:
            reason = "no_length"
        elif length > self._max_object_bytes:
            reason = "too_large"
        cacheable = reason is None
        if not cacheable:
            increment("cache.bypass")
            log_event(
                "cache.bypass",
                cache_key=directives.cache_key,
                reason=reason,
                status=resp.status_code,
                content_length=length,
            )
        stored_headers = tuple(resp.headers.multi_items())
        return OriginResponse(
            status_code=resp.status_code,
            headers=stored_headers,
            chunks=self._relay(resp, directives, byte_range, stored_headers, cacheable),
            close=resp.aclose,
        )

    async def _relay(
        self,
        resp: httpx.Response,
        directives: CacheDirectives,
        byte_range: str | None,
        headers: tuple[tuple[str, str], ...],
        cacheable: bool,
    ) -> AsyncIterator[bytes]:
        # Raw bytes keep Content-Encoding and Content-Length truthful downstream.
        buffer: list[bytes] | None = [] if cacheable else None
        size = 0
        try:
            async for chunk in resp.aiter_raw():
                if buffer is not None:
                    size += len(chunk)
                    if size > self._max_object_bytes:
                        buffer = None
                    else:
                        buffer.append(chunk)
                yield chunk
            if buffer is not None:
                stored = CachedResponse(
                    status_code=resp.status_code, headers=headers, body=b"".join(buffer)
                )
                if self._cache.put(directives.cache_key, stored, directives.ttl_s, byte_range):
                    log_event("cache.store", cache_key=directives.cache_key, size=size)
        finally:
            await resp.aclose()
