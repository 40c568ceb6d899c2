from __future__ import annotations

import pytest

from edge_gateway.cache import CachedResponse
from edge_gateway.config import Settings
from edge_gateway.keys import generate_private_key, public_key_pem
from edge_gateway.observability import reset
from edge_gateway.origin import from_cached
from edge_gateway.signing import UrlSigner


class RecordingFetcher:
    def __init__(self, response: CachedResponse | None = None) -> None:
        self.calls = []
        self.response = response or CachedResponse(
            status_code=200,
            headers=(("Content-Type", "image/png"), ("ETag", '"abc"')),
            body=b"\x89PNG-bytes",
        )

    async def fetch(self, url, headers, directives):
        self.calls.append((url, dict(headers), directives))
        return from_cached(self.response)


@pytest.fixture(scope="session")
def private_key():
    return generate_private_key()


@pytest.fixture(scope="session")
def public_pem(private_key) -> str:
    return public_key_pem(private_key)


@pytest.fixture
def signer(private_key) -> UrlSigner:
    return UrlSigner(private_key)


@pytest.fixture
def settings(public_pem: str) -> Settings:
    return Settings(
        public_key_pem=public_pem,
        primary_bucket="quay-primary",
        primary_region="us-east-1",
        secondary_bucket="quay-secondary",
        secondary_region="eu-west-1",
        extra_origins="",
        cache_ttl_s=60,
        browser_max_age_s=1500,
        origin_host_template="{bucket}.s3.amazonaws.com",
        origin_scheme="https",
        health_path="/health",
    )


@pytest.fixture
def fetcher() -> RecordingFetcher:
    return RecordingFetcher()


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    reset()
