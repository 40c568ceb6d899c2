from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from fastapi import status


class ConfigurationError(RuntimeError):
    """Raised at startup when the gateway cannot be configured."""


class RejectionKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    PARAMETER_MISSING = "parameter_missing"
    PARAMETER_INVALID = "parameter_invalid"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"


class Rejection(Exception):
    def __init__(self, kind: RejectionKind, status_code: int, message: str):
        self.kind = kind
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def config_missing() -> Rejection:
    return Rejection(
        RejectionKind.CONFIG_MISSING,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Primary origin bucket/region not set",
    )


def parameter_missing() -> Rejection:
    return Rejection(
        RejectionKind.PARAMETER_MISSING, status.HTTP_403_FORBIDDEN, "Missing query parameter"
    )


def parameter_invalid() -> Rejection:
    return Rejection(
        RejectionKind.PARAMETER_INVALID, status.HTTP_403_FORBIDDEN, "Invalid query parameter"
    )


def signature_invalid() -> Rejection:
    return Rejection(
        RejectionKind.SIGNATURE_INVALID, status.HTTP_403_FORBIDDEN, "Invalid Signature"
    )


def expired(expiry: int) -> Rejection:
    try:
        when = datetime.fromtimestamp(expiry, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        when = str(expiry)
    return Rejection(RejectionKind.EXPIRED, status.HTTP_403_FORBIDDEN, f"URL expired at {when}")
