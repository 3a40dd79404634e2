from __future__ import annotations

import json
import time

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from codec import base64url_decode, base64url_encode
from errors import SigningError
from vapid import TOKEN_LIFETIME_SECONDS, VapidKeyPair, audience_for, build_auth_header, build_jwt, load_private_key


def _segments(token: str) -> tuple[dict, dict, bytes]:
    header_b64, claims_b64, signature_b64 = token.split(".")
    return (
        json.loads(base64url_decode(header_b64)),
        json.loads(base64url_decode(claims_b64)),
        base64url_decode(signature_b64),
    )


def _token_from(headers: dict[str, str]) -> str:
    authorization = headers["Authorization"]
    assert authorization.startswith("vapid t=")
    return authorization[len("vapid t=") :].split(",")[0]


def test_build_jwt_has_es256_header_and_claims(vapid_key_pair):
    token = build_jwt("https://push.example.net", "mailto:test@example.com", vapid_key_pair, 1_700_000_000)

    header, claims, signature = _segments(token)
    assert header == {"typ": "JWT", "alg": "ES256"}
    assert claims == {"aud": "https://push.example.net", "sub": "mailto:test@example.com", "exp": 1_700_000_000}
    assert len(signature) == 64


def test_build_jwt_signature_verifies_with_public_key(vapid_key_pair, vapid_private_key):
    token = build_jwt("https://fcm.googleapis.com", "mailto:test@example.com", vapid_key_pair, 1_700_000_000)
    signing_input, _, signature_b64 = token.rpartition(".")
    signature = base64url_decode(signature_b64)

    der = encode_dss_signature(int.from_bytes(signature[:32], "big"), int.from_bytes(signature[32:], "big"))
    # Raises InvalidSignature on mismatch.
    vapid_private_key.public_key().verify(der, signing_input.encode("ascii"), ec.ECDSA(hashes.SHA256()))


def test_auth_header_audience_is_scoped_to_endpoint_origin(vapid_key_pair):
    fcm = build_auth_header("https://fcm.googleapis.com/fcm/send/abc", vapid_key_pair.subject, vapid_key_pair)
    mozilla = build_auth_header("https://updates.push.services.mozilla.com/wpush/v2/xyz", vapid_key_pair.subject, vapid_key_pair)

    _, fcm_claims, _ = _segments(_token_from(fcm))
    _, mozilla_claims, _ = _segments(_token_from(mozilla))
    assert fcm_claims["aud"] == "https://fcm.googleapis.com"
    assert mozilla_claims["aud"] == "https://updates.push.services.mozilla.com"
    assert fcm_claims["aud"] != mozilla_claims["aud"]


def test_auth_header_expiration_within_twelve_hours(vapid_key_pair):
    before = int(time.time())
    headers = build_auth_header("https://fcm.googleapis.com/fcm/send/abc", vapid_key_pair.subject, vapid_key_pair)
    after = int(time.time())

    _, claims, _ = _segments(_token_from(headers))
    assert before < claims["exp"] <= after + TOKEN_LIFETIME_SECONDS
    assert TOKEN_LIFETIME_SECONDS == 12 * 60 * 60


def test_auth_header_expiration_follows_supplied_clock(vapid_key_pair):
    headers = build_auth_header("https://push.example.net/a", vapid_key_pair.subject, vapid_key_pair, now=1_000.7)
    _, claims, _ = _segments(_token_from(headers))
    assert claims["exp"] == 1_000 + TOKEN_LIFETIME_SECONDS


def test_auth_header_carries_public_key_in_both_headers(vapid_key_pair):
    headers = build_auth_header("https://push.example.net:8443/a", vapid_key_pair.subject, vapid_key_pair)

    assert headers["Authorization"].endswith(f", k={vapid_key_pair.public_key}")
    assert headers["Crypto-Key"] == f"p256ecdsa={vapid_key_pair.public_key}"
    _, claims, _ = _segments(_token_from(headers))
    assert claims["aud"] == "https://push.example.net:8443"


def test_audience_rejects_endpoint_without_origin():
    with pytest.raises(SigningError):
        audience_for("not-a-url")


def test_audience_drops_userinfo():
    assert audience_for("https://user:pw@push.example.net/x") == "https://push.example.net"


@pytest.mark.parametrize(
    "endpoint, audience",
    [
        ("https://FCM.GoogleAPIs.com/fcm/send/abc", "https://fcm.googleapis.com"),
        ("HTTPS://push.example.net:443/x", "https://push.example.net"),
        ("http://push.example.net:80/x", "http://push.example.net"),
        ("https://push.example.net:80/x", "https://push.example.net:80"),
        ("https://push.example.net:8443/x", "https://push.example.net:8443"),
        ("https://[2001:DB8::1]:443/x", "https://[2001:db8::1]"),
    ],
)
def test_audience_is_normalized_origin(endpoint, audience):
    assert audience_for(endpoint) == audience


def test_audience_rejects_invalid_port():
    with pytest.raises(SigningError):
        audience_for("https://push.example.net:99999/x")


@pytest.mark.parametrize("private_key", ["", "!!!", base64url_encode(b"\x01" * 10)])
def test_malformed_private_key_raises_signing_error(private_key):
    key_pair = VapidKeyPair(public_key="pub", private_key=private_key, subject="mailto:test@example.com")
    with pytest.raises(SigningError):
        build_auth_header("https://push.example.net/a", key_pair.subject, key_pair)


def test_non_p256_private_key_is_rejected():
    other_curve = ec.generate_private_key(ec.SECP384R1())
    der = other_curve.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    with pytest.raises(SigningError):
        load_private_key(base64url_encode(der))


def test_load_private_key_accepts_pem_raw_scalar_and_der(vapid_private_key):
    expected = vapid_private_key.private_numbers().private_value
    pem = vapid_private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    raw = base64url_encode(expected.to_bytes(32, "big"))
    sec1 = base64url_encode(
        vapid_private_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )

    for value in (pem, pem.replace("\n", "\\n"), raw, sec1):
        assert load_private_key(value).private_numbers().private_value == expected
