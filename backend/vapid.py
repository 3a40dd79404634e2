# Version History
# v1.0 - VAPID (RFC 8292) ES256 token signing scoped to the push service origin.
# v1.1 - Audience is the normalized origin: lowercased host, default port dropped.

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from codec import base64url_decode, base64url_encode
from crypto_provider import CURVE, CryptoProvider, default_provider
from errors import SigningError

TOKEN_LIFETIME_SECONDS = 12 * 60 * 60
JWT_HEADER = {"typ": "JWT", "alg": "ES256"}
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class VapidKeyPair:
    public_key: str
    private_key: str
    subject: str


@lru_cache(maxsize=8)
def load_private_key(value: str) -> ec.EllipticCurvePrivateKey:
    """Accept PEM, base64url DER (PKCS#8 or SEC1) or a base64url raw 32-byte scalar."""
    text = value.strip().replace("\\n", "\n")
    try:
        if text.startswith("-----BEGIN"):
            key = serialization.load_pem_private_key(text.encode("ascii"), password=None)
        else:
            raw = base64url_decode(text)
            if len(raw) == 32:
                key = ec.derive_private_key(int.from_bytes(raw, "big"), CURVE)
            else:
                key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"Unable to import VAPID private key: {exc}") from exc

    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
        raise SigningError("VAPID private key must be a P-256 EC key")
    return key


def _segment(obj: dict) -> str:
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def audience_for(endpoint: str) -> str:
    parsed = urlparse(endpoint)
    scheme = parsed.scheme.lower()
    if not scheme or not parsed.hostname:
        raise SigningError("Push endpoint has no origin to sign for")

    try:
        port = parsed.port
    except ValueError as exc:
        raise SigningError(f"Push endpoint has an invalid port: {exc}") from exc

    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"
    return f"{scheme}://{host}"


def build_jwt(
    audience: str,
    subject: str,
    key_pair: VapidKeyPair,
    expiration: int,
    provider: CryptoProvider = default_provider,
) -> str:
    claims = {"aud": audience, "sub": subject, "exp": int(expiration)}
    unsigned = f"{_segment(JWT_HEADER)}.{_segment(claims)}"

    private_key = load_private_key(key_pair.private_key)
    try:
        signature = provider.ecdsa_sign(private_key, unsigned.encode("ascii"))
    except (ValueError, TypeError) as exc:
        raise SigningError(f"Unable to sign VAPID token: {exc}") from exc

    return f"{unsigned}.{base64url_encode(signature)}"


def build_auth_header(
    endpoint: str,
    subject: str,
    key_pair: VapidKeyPair,
    provider: CryptoProvider = default_provider,
    now: float | None = None,
) -> dict[str, str]:
    audience = audience_for(endpoint)
    # Fresh per call; aud is origin specific and must never be reused across push services.
    issued_at = time.time() if now is None else now
    expiration = int(issued_at) + TOKEN_LIFETIME_SECONDS

    token = build_jwt(audience, subject, key_pair, expiration, provider=provider)
    return {
        "Authorization": f"vapid t={token}, k={key_pair.public_key}",
        "Crypto-Key": f"p256ecdsa={key_pair.public_key}",
    }
