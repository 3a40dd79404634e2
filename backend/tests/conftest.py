from __future__ import annotations

import os
import tempfile

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from codec import base64url_encode


def _uncompressed(public_key: ec.EllipticCurvePublicKey) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


_VAPID_PRIVATE = ec.generate_private_key(ec.SECP256R1())
VAPID_PUBLIC_B64 = base64url_encode(_uncompressed(_VAPID_PRIVATE.public_key()))
VAPID_PRIVATE_B64 = base64url_encode(
    _VAPID_PRIVATE.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
)

# main.py reads these at import time.
os.environ["VAPID_PUBLIC_KEY"] = VAPID_PUBLIC_B64
os.environ["VAPID_PRIVATE_KEY"] = VAPID_PRIVATE_B64
os.environ["VAPID_SUBJECT"] = "mailto:test@example.com"
os.environ.setdefault("KINDSPREAD_DB_PATH", os.path.join(tempfile.mkdtemp(), "kindspread-test.db"))


class Recipient:
    def __init__(self) -> None:
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.public_bytes = _uncompressed(self.private_key.public_key())
        self.auth_secret = os.urandom(16)

    @property
    def p256dh(self) -> str:
        return base64url_encode(self.public_bytes)

    @property
    def auth(self) -> str:
        return base64url_encode(self.auth_secret)


@pytest.fixture
def vapid_private_key() -> ec.EllipticCurvePrivateKey:
    return _VAPID_PRIVATE


@pytest.fixture
def vapid_key_pair():
    from vapid import VapidKeyPair

    return VapidKeyPair(public_key=VAPID_PUBLIC_B64, private_key=VAPID_PRIVATE_B64, subject="mailto:test@example.com")


@pytest.fixture
def recipient() -> Recipient:
    return Recipient()


@pytest.fixture
def make_recipient():
    return Recipient


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    import db

    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "subscriptions.db"))
    db.init_db()
    return db


def reference_decrypt(record: bytes, recipient: Recipient) -> bytes:
    """Recipient-side aes128gcm decryption written straight from RFC 8291 / RFC 8188."""
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM
    from cryptography.hazmat.primitives.kdf.hkdf import HKDF

    salt = record[:16]
    key_id_length = record[20]
    sender_public = record[21 : 21 + key_id_length]
    ciphertext = record[21 + key_id_length :]

    sender_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), sender_public)
    shared = recipient.private_key.exchange(ec.ECDH(), sender_key)
    ikm = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=recipient.auth_secret,
        info=b"WebPush: info\x00" + recipient.public_bytes + sender_public,
    ).derive(shared)
    cek = HKDF(algorithm=hashes.SHA256(), length=16, salt=salt, info=b"Content-Encoding: aes128gcm\x00").derive(ikm)
    nonce = HKDF(algorithm=hashes.SHA256(), length=12, salt=salt, info=b"Content-Encoding: nonce\x00").derive(ikm)

    padded = AESGCM(cek).decrypt(nonce, ciphertext, None)
    assert padded.endswith(b"\x02")
    return padded[:-1]


@pytest.fixture
def decrypt_record():
    return reference_decrypt
