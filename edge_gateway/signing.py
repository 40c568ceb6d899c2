"""
RSA signatures over signed-URL authentication messages.

A signed URL carries ``cf_sign`` (base64 PKCS#1 v1.5 / SHA-256 signature) and
``cf_expiry`` (decimal Unix seconds). The signed payload is the UTF-8 encoding
of ``"{path}@{expiry}"`` where ``path`` is the request path exactly as sent.
"""

from __future__ import annotations

import base64
import binascii
from urllib.parse import urlencode

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

SIGNATURE_PARAM = "cf_sign"
EXPIRY_PARAM = "cf_expiry"
REGION_PARAM = "region"
AUTH_PARAMS = frozenset({SIGNATURE_PARAM, EXPIRY_PARAM, REGION_PARAM})


def decode_signature(value: str) -> bytes:
    """Decode base64 the way browsers' atob does: whitespace dropped, padding optional."""
    compact = "".join(value.split())
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


def authentication_message(path: str, expiry: int) -> str:
    return f"{path}@{int(expiry)}"


class SignatureVerifier:
    """Verifies signatures against the process-wide public key."""

    def __init__(self, public_key: rsa.RSAPublicKey) -> None:
        self._public_key = public_key

    def verify(self, signature_b64: str, message: str) -> bool:
        try:
            signature = decode_signature(signature_b64)
            data = message.encode("utf-8")
        except (binascii.Error, ValueError):
            return False
        try:
            self._public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
        except (InvalidSignature, ValueError):
            return False
        return True


class UrlSigner:
    """Issues signed URLs; the private key never lives inside the gateway."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._private_key = private_key

    def sign(self, message: str) -> str:
        signature = self._private_key.sign(
            message.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
        )
        return base64.b64encode(signature).decode("ascii")

    def signed_query(self, path: str, expiry: int, region: str | None = None) -> str:
        params = {
            SIGNATURE_PARAM: self.sign(authentication_message(path, expiry)),
            EXPIRY_PARAM: str(int(expiry)),
        }
        if region:
            params[REGION_PARAM] = region
        return urlencode(params)

    def signed_url(self, base_url: str, path: str, expiry: int, region: str | None = None) -> str:
        return f"{base_url.rstrip('/')}{path}?{self.signed_query(path, expiry, region)}"
