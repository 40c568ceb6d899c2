from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

import httpx
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from edge_gateway.cache import MemoryEdgeCache
from edge_gateway.config import Settings
from edge_gateway.keys import load_public_key
from edge_gateway.observability import increment, log_event, observe_ms
from edge_gateway.origin import CachingOriginClient
from edge_gateway.pipeline import Gateway, GatewayResponse, InboundRequest
from edge_gateway.signing import SignatureVerifier
from edge_gateway.storage import build_origin_table


def inbound_request(request: Request) -> InboundRequest:
    # Signatures cover the path exactly as the client sent it, so use the
    # undecoded path rather than request.url.path.
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    path = raw_path.split(b"?", 1)[0].decode("latin-1")
    query = request.scope.get("query_string", b"").decode("latin-1")
    url = f"{request.url.scheme}://{request.url.netloc}{path}"
    if query:
        url = f"{url}?{query}"
    return InboundRequest(method=request.method, url=url, headers=dict(request.headers))


def to_response(result: GatewayResponse) -> Response:
    if result.stream is not None:
        response = StreamingResponse(
            result.stream,
            status_code=result.status_code,
            background=BackgroundTask(result.close) if result.close else None,
        )
    else:
        response = Response(content=result.body, status_code=result.status_code)
    for key, value in result.headers:
        response.headers.append(key, value)
    return response


def create_app(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the gateway app; configuration problems fail here, not per request."""
    settings = (settings or Settings.from_env()).validate()
    verifier = SignatureVerifier(load_public_key(settings.public_key_pem))
    origins = build_origin_table(settings)
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.origin_timeout_s)
    cache = MemoryEdgeCache(
        max_entries=settings.cache_max_entries, max_bytes=settings.cache_max_bytes
    )
    gateway = Gateway(
        settings=settings,
        verifier=verifier,
        origins=origins,
        fetcher=CachingOriginClient(
            client, cache, max_object_bytes=settings.cache_max_object_bytes
        ),
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        log_event(
            "gateway.startup",
            primary_bucket=settings.primary_bucket,
            regions=sorted(origins.by_region),
            cache_ttl_s=settings.cache_ttl_s,
        )
        try:
            yield
        finally:
            if owns_client:
                await client.aclose()

    app = FastAPI(
        title="edge-gateway", docs_url=None, redoc_url=None, openapi_url=None, lifespan=lifespan
    )
    app.state.gateway = gateway
    app.state.cache = cache

    @app.middleware("http")
    async def request_observability(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        t0 = time.perf_counter()
        response = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - t0) * 1000.0
            increment("http.requests.total")
            observe_ms("http.request.latency_ms", duration_ms)
            log_event(
                "http.request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round(duration_ms, 2),
            )
            if response is not None:
                response.headers["x-request-id"] = request_id

    @app.api_route("/{path:path}", methods=["GET", "HEAD", "OPTIONS"], include_in_schema=False)
    async def handle(request: Request) -> Response:
        result = await request.app.state.gateway.handle(inbound_request(request))
        return to_response(result)

    return app
