from __future__ import annotations

from pydantic import ValidationError

from edge_gateway.errors import expired, parameter_invalid, parameter_missing, signature_invalid
from edge_gateway.observability import log_event
from edge_gateway.schemas import SignedParams
from edge_gateway.signing import (
    EXPIRY_PARAM,
    SIGNATURE_PARAM,
    SignatureVerifier,
    authentication_message,
)


def first_values(pairs: list[tuple[str, str]]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in pairs:
        out.setdefault(key, value)
    return out


def parse_signed_params(query: dict[str, str]) -> SignedParams:
    if SIGNATURE_PARAM not in query or EXPIRY_PARAM not in query:
        raise parameter_missing()
    try:
        return SignedParams.model_validate(query)
    except ValidationError as exc:
        if any(err["type"] == "missing" for err in exc.errors()):
            raise parameter_missing() from exc
        raise parameter_invalid() from exc


def is_expired(expiry: int, now: float) -> bool:
    return now > expiry


def authorize(
    path: str, query: dict[str, str], verifier: SignatureVerifier, now: float
) -> SignedParams:
    """Check presence, signature and expiry, in that order."""
    params = parse_signed_params(query)
    message = authentication_message(path, params.expiry)
    if not verifier.verify(params.signature, message):
        raise signature_invalid()
    log_event("gateway.verified", path=path, expiry=params.expiry)
    if is_expired(params.expiry, now):
        raise expired(params.expiry)
    return params
