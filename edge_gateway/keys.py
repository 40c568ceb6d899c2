from __future__ import annotations

import base64
import binascii
import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from edge_gateway.errors import ConfigurationError
from edge_gateway.observability import log_event

KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537
PEM_LINE_LENGTH = 64


def pem_to_der(pem: str) -> bytes:
    """Strip PEM armor lines and whitespace, then base64-decode the payload."""
    # Keys pasted into env files often carry literal "\n" sequences.
    text = pem.replace("\\n", "\n")
    encoded = "".join(
        line.strip()
        for line in text.splitlines()
        if line.strip() and not line.strip().startswith("-----")
    )
    if not encoded:
        raise ConfigurationError("Public key PEM is empty")
    try:
        return base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Public key PEM payload is not valid base64") from exc


def der_to_pem(der: bytes, label: str) -> str:
    encoded = base64.b64encode(der).decode("ascii")
    lines = [f"-----BEGIN {label}-----"]
    lines += [
        encoded[i : i + PEM_LINE_LENGTH] for i in range(0, len(encoded), PEM_LINE_LENGTH)
    ]
    lines.append(f"-----END {label}-----")
    return "\r\n".join(lines) + "\r\n"


def load_public_key(pem: str) -> rsa.RSAPublicKey:
    der = pem_to_der(pem)
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError("Public key is not a valid SPKI structure") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise ConfigurationError("Public key must be an RSA key")
    numbers = key.public_numbers()
    if numbers.e != PUBLIC_EXPONENT:
        raise ConfigurationError(f"RSA public exponent must be {PUBLIC_EXPONENT}")
    if key.key_size != KEY_SIZE:
        log_event(
            "keys.unusual_modulus",
            level=logging.WARNING,
            kind="key_size",
            reason=f"expected {KEY_SIZE}-bit modulus",
            key_size=key.key_size,
        )
    return key


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=KEY_SIZE)


def public_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return der_to_pem(der, "PUBLIC KEY")


def private_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return der_to_pem(der, "PRIVATE KEY")


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError("Private key PEM could not be loaded") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Private key must be an RSA key")
    return key
