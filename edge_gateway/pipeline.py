"""
Signed-URL request pipeline.

Every inbound request goes through the same ordered states: origin
configuration, CORS preflight, health/metrics, parameter presence,
signature, expiry, cache key, origin resolution, URL rewrite, fetch and
header post-processing. Any rejection short-circuits to a plain-text
response.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Mapping
from urllib.parse import parse_qsl, urlsplit

from edge_gateway.auth import authorize, first_values
from edge_gateway.cache import CacheDirectives, derive_cache_key
from edge_gateway.config import Settings
from edge_gateway.errors import Rejection, config_missing
from edge_gateway.observability import increment, log_event, snapshot
from edge_gateway.origin import OriginFetcher, OriginResponse, OriginUnavailable
from edge_gateway.signing import SignatureVerifier
from edge_gateway.storage import OriginTable, rewrite_url

PREFLIGHT_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET,HEAD,POST,OPTIONS"),
    ("Access-Control-Max-Age", "86400"),
)
RESPONSE_CORS_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS"),
)
# Dropped from origin responses: hop-by-hop headers plus the ones the
# gateway sets itself. The body is relayed raw, so Content-Encoding and
# Content-Length pass through unchanged.
_STRIP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "cache-control",
        "access-control-allow-origin",
        "access-control-allow-methods",
    }
)


@dataclass(frozen=True)
class InboundRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in dict(self.headers).items()}
        )

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    # Set for relayed origin bodies; takes precedence over ``body``.
    stream: AsyncIterator[bytes] | None = None
    close: Callable[[], Awaitable[None]] | None = None

    async def read(self) -> bytes:
        if self.stream is None:
            return self.body
        try:
            return b"".join([chunk async for chunk in self.stream])
        finally:
            if self.close is not None:
                await self.close()

    def header(self, name: str) -> str | None:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None


def plain_text(status_code: int, message: str) -> GatewayResponse:
    return GatewayResponse(
        status_code=status_code,
        headers=[("Content-Type", "text/plain; charset=utf-8")],
        body=message.encode("utf-8"),
    )


def preflight(request: InboundRequest) -> GatewayResponse:
    headers = list(PREFLIGHT_HEADERS)
    requested = request.header("Access-Control-Request-Headers")
    if requested is not None:
        headers.append(("Access-Control-Allow-Headers", requested))
    return GatewayResponse(status_code=204, headers=headers)


def finalize(origin: OriginResponse, browser_max_age_s: int) -> GatewayResponse:
    headers = [(k, v) for k, v in origin.headers if k.lower() not in _STRIP_HEADERS]
    headers.append(("Cache-Control", f"max-age={browser_max_age_s}"))
    headers.extend(RESPONSE_CORS_HEADERS)
    return GatewayResponse(
        status_code=origin.status_code,
        headers=headers,
        stream=origin.chunks,
        close=origin.close,
    )


class Gateway:
    def __init__(
        self,
        settings: Settings,
        verifier: SignatureVerifier,
        origins: OriginTable,
        fetcher: OriginFetcher,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._verifier = verifier
        self._origins = origins
        self._fetcher = fetcher
        self._clock = clock

    async def handle(self, request: InboundRequest) -> GatewayResponse:
        try:
            return await self._handle(request)
        except Rejection as rej:
            increment(f"gateway.rejected.{rej.kind.value}")
            log_event(
                "gateway.rejected",
                kind=rej.kind.value,
                status=rej.status_code,
                reason=rej.message,
                path=urlsplit(request.url).path,
            )
            return plain_text(rej.status_code, rej.message)
        except OriginUnavailable as exc:
            increment("gateway.rejected.origin_unavailable")
            log_event(
                "gateway.rejected",
                kind="origin_unavailable",
                status=502,
                reason=str(exc),
                path=urlsplit(request.url).path,
            )
            return plain_text(502, "Origin unavailable")

    async def _handle(self, request: InboundRequest) -> GatewayResponse:
        if not self._origins.configured:
            raise config_missing()

        if request.method.upper() == "OPTIONS":
            return preflight(request)

        parts = urlsplit(request.url)
        if parts.path == self._settings.health_path:
            return plain_text(200, "ok")
        if self._settings.metrics_path and parts.path == self._settings.metrics_path:
            return GatewayResponse(
                status_code=200,
                headers=[("Content-Type", "application/json")],
                body=json.dumps(snapshot(), sort_keys=True).encode("utf-8"),
            )

        query = first_values(parse_qsl(parts.query, keep_blank_values=True))
        params = authorize(parts.path, query, self._verifier, self._clock())

        # Keyed on the inbound URL so the entry survives origin changes.
        cache_key = derive_cache_key(parts.hostname or "", parts.path)
        backend = self._origins.resolve(params.region)
        fetch_url = rewrite_url(request.url, backend, self._settings.origin_scheme)

        headers = {}
        byte_range = request.header("Range")
        if byte_range:
            headers["Range"] = byte_range

        directives = CacheDirectives(cache_key=cache_key, ttl_s=self._settings.cache_ttl_s)
        log_event(
            "gateway.fetch",
            cache_key=cache_key,
            fetch_url=fetch_url,
            bucket=backend.bucket,
            range=byte_range,
        )
        origin = await self._fetcher.fetch(fetch_url, headers, directives)
        return finalize(origin, self._settings.browser_max_age_s)
