from __future__ import annotations

from dataclasses import replace

import pytest

from edge_gateway.config import Settings
from edge_gateway.errors import ConfigurationError


def test_from_env_reads_prefixed_values():
    s = Settings.from_env(
        {
            "EDGE_GATEWAY_PUBLIC_KEY_PEM": "pem",
            "EDGE_GATEWAY_PRIMARY_BUCKET": "quay-primary",
            "EDGE_GATEWAY_PRIMARY_REGION": "us-east-1",
            "EDGE_GATEWAY_CACHE_TTL_S": "120",
            "EDGE_GATEWAY_ORIGIN_TIMEOUT_S": "2.5",
            "UNRELATED": "x",
        }
    )
    assert s.primary_bucket == "quay-primary"
    assert s.cache_ttl_s == 120
    assert s.origin_timeout_s == 2.5
    assert s.missing() == []


def test_defaults():
    s = Settings.from_env({})
    assert s.cache_ttl_s == 60
    assert s.browser_max_age_s == 1500
    assert s.health_path == "/health"
    assert s.origin_host_template == "{bucket}.s3.amazonaws.com"
    assert s.metrics_path == ""
    assert s.cache_max_bytes == 256 * 1024 * 1024
    assert s.cache_max_object_bytes == 8 * 1024 * 1024


def test_non_numeric_value_is_configuration_error():
    with pytest.raises(ConfigurationError, match="EDGE_GATEWAY_CACHE_TTL_S"):
        Settings.from_env({"EDGE_GATEWAY_CACHE_TTL_S": "a minute"})


def test_validate_names_every_missing_field():
    with pytest.raises(ConfigurationError) as exc:
        Settings.from_env({"EDGE_GATEWAY_PRIMARY_BUCKET": "quay-primary"}).validate()
    message = str(exc.value)
    assert "EDGE_GATEWAY_PUBLIC_KEY_PEM" in message
    assert "EDGE_GATEWAY_PRIMARY_REGION" in message
    assert "EDGE_GATEWAY_PRIMARY_BUCKET" not in message


def test_validate_rejects_bad_values(settings):
    assert settings.validate() is settings
    with pytest.raises(ConfigurationError):
        replace(settings, cache_ttl_s=0).validate()
    with pytest.raises(ConfigurationError):
        replace(settings, origin_scheme="ftp").validate()
    with pytest.raises(ConfigurationError):
        replace(settings, origin_host_template="s3.amazonaws.com").validate()
    with pytest.raises(ConfigurationError, match="CACHE_MAX_OBJECT_BYTES"):
        replace(settings, cache_max_bytes=1024, cache_max_object_bytes=2048).validate()


def test_extra_origin_pairs(settings):
    s = replace(settings, extra_origins=" ap-south-1=quay-ap ,, us-west-2 = quay-usw")
    assert s.extra_origin_pairs() == [("ap-south-1", "quay-ap"), ("us-west-2", "quay-usw")]
