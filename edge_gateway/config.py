from __future__ import annotations

import os
from dataclasses import dataclass, fields

from edge_gateway.errors import ConfigurationError

ENV_PREFIX = "EDGE_GATEWAY_"
REQUIRED_FIELDS = ("public_key_pem", "primary_bucket", "primary_region")


@dataclass(frozen=True)
class Settings:
    public_key_pem: str = os.getenv("EDGE_GATEWAY_PUBLIC_KEY_PEM", "")
    primary_bucket: str = os.getenv("EDGE_GATEWAY_PRIMARY_BUCKET", "")
    primary_region: str = os.getenv("EDGE_GATEWAY_PRIMARY_REGION", "")
    secondary_bucket: str = os.getenv("EDGE_GATEWAY_SECONDARY_BUCKET", "")
    secondary_region: str = os.getenv("EDGE_GATEWAY_SECONDARY_REGION", "")
    # Comma separated "region=bucket" pairs beyond the secondary backend.
    extra_origins: str = os.getenv("EDGE_GATEWAY_EXTRA_ORIGINS", "")
    cache_ttl_s: int = int(os.getenv("EDGE_GATEWAY_CACHE_TTL_S", 60))
    browser_max_age_s: int = int(os.getenv("EDGE_GATEWAY_BROWSER_MAX_AGE_S", 1500))
    cache_max_entries: int = int(os.getenv("EDGE_GATEWAY_CACHE_MAX_ENTRIES", 1024))
    cache_max_bytes: int = int(os.getenv("EDGE_GATEWAY_CACHE_MAX_BYTES", 256 * 1024 * 1024))
    # Larger objects, or ones without a Content-Length, are streamed uncached.
    cache_max_object_bytes: int = int(
        os.getenv("EDGE_GATEWAY_CACHE_MAX_OBJECT_BYTES", 8 * 1024 * 1024)
    )
    origin_host_template: str = os.getenv(
        "EDGE_GATEWAY_ORIGIN_HOST_TEMPLATE", "{bucket}.s3.amazonaws.com"
    )
    origin_scheme: str = os.getenv("EDGE_GATEWAY_ORIGIN_SCHEME", "https")
    origin_timeout_s: float = float(os.getenv("EDGE_GATEWAY_ORIGIN_TIMEOUT_S", 30))
    health_path: str = os.getenv("EDGE_GATEWAY_HEALTH_PATH", "/health")
    # Empty disables the metrics route; any other path shadows that object key.
    metrics_path: str = os.getenv("EDGE_GATEWAY_METRICS_PATH", "")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Read settings from ``environ`` at call time instead of import time."""
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                values[f.name] = _coerce(f.type, raw)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{ENV_PREFIX}{f.name.upper()} is not a valid value: {raw!r}"
                ) from exc
        return cls(**values)

    def missing(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name).strip()]

    def validate(self) -> Settings:
        missing = self.missing()
        if missing:
            names = ", ".join(ENV_PREFIX + name.upper() for name in missing)
            raise ConfigurationError(f"Missing required configuration: {names}")
        if self.cache_ttl_s <= 0:
            raise ConfigurationError("EDGE_GATEWAY_CACHE_TTL_S must be positive")
        if self.cache_max_object_bytes > self.cache_max_bytes:
            raise ConfigurationError(
                "EDGE_GATEWAY_CACHE_MAX_OBJECT_BYTES must not exceed EDGE_GATEWAY_CACHE_MAX_BYTES"
            )
        if self.origin_scheme not in ("http", "https"):
            raise ConfigurationError("EDGE_GATEWAY_ORIGIN_SCHEME must be http or https")
        if "{bucket}" not in self.origin_host_template:
            raise ConfigurationError(
                "EDGE_GATEWAY_ORIGIN_HOST_TEMPLATE must contain a {bucket} placeholder"
            )
        return self

    def extra_origin_pairs(self) -> list[tuple[str, str]]:
        pairs = []
        for chunk in self.extra_origins.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            region, sep, bucket = chunk.partition("=")
            if not sep or not region.strip() or not bucket.strip():
                raise ConfigurationError(f"Invalid extra origin entry: {chunk!r}")
            pairs.append((region.strip(), bucket.strip()))
        return pairs


def _coerce(type_name: str, raw: str) -> str | int | float:
    # Annotations are strings under postponed evaluation.
    if type_name == "int":
        return int(raw)
    if type_name == "float":
        return float(raw)
    return raw
