from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from edge_gateway.config import Settings
from edge_gateway.signing import AUTH_PARAMS


@dataclass(frozen=True)
class OriginBackend:
    region: str
    bucket: str
    host: str


@dataclass(frozen=True)
class OriginTable:
    default: OriginBackend | None
    by_region: Mapping[str, OriginBackend] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return self.default is not None

    def resolve(self, region: str | None) -> OriginBackend:
        if self.default is None:
            raise LookupError("no default origin configured")
        if region is None:
            return self.default
        return self.by_region.get(region, self.default)


def origin_host(bucket: str, template: str = "{bucket}.s3.amazonaws.com") -> str:
    return template.format(bucket=bucket)


def build_origin_table(settings: Settings) -> OriginTable:
    template = settings.origin_host_template

    def backend(region: str, bucket: str) -> OriginBackend:
        return OriginBackend(region=region, bucket=bucket, host=origin_host(bucket, template))

    default = None
    if settings.primary_bucket and settings.primary_region:
        default = backend(settings.primary_region, settings.primary_bucket)

    by_region: dict[str, OriginBackend] = {}
    if settings.secondary_bucket and settings.secondary_region:
        by_region[settings.secondary_region] = backend(
            settings.secondary_region, settings.secondary_bucket
        )
    for region, bucket in settings.extra_origin_pairs():
        by_region.setdefault(region, backend(region, bucket))
    return OriginTable(default=default, by_region=MappingProxyType(by_region))


def strip_query_params(query: str, names: frozenset[str] = AUTH_PARAMS) -> str:
    """Drop ``names`` from a raw query string; other pairs are kept verbatim."""
    kept = []
    for pair in query.split("&"):
        if not pair:
            continue
        key = unquote_plus(pair.partition("=")[0])
        if key in names:
            continue
        kept.append(pair)
    return "&".join(kept)


def rewrite_url(url: str, backend: OriginBackend, scheme: str = "https") -> str:
    parts = urlsplit(url)
    return urlunsplit((scheme, backend.host, parts.path, strip_query_params(parts.query), ""))
