# Version History
# v1.0 - RFC 8291 aes128gcm payload encryption, one single-record message per recipient.

from __future__ import annotations

import struct

from codec import base64url_decode, concat
from crypto_provider import UNCOMPRESSED_POINT_LENGTH, CryptoProvider, default_provider
from errors import MalformedInput, MalformedKeyMaterial

SALT_LENGTH = 16
AUTH_SECRET_LENGTH = 16
RECORD_SIZE = 4096
CEK_LENGTH = 16
NONCE_LENGTH = 12
IKM_LENGTH = 32
TAG_LENGTH = 16
HEADER_LENGTH = SALT_LENGTH + 4 + 1 + UNCOMPRESSED_POINT_LENGTH

# Delimiter for the final (and only) record.
LAST_RECORD_PAD = b"\x02"

WEBPUSH_INFO = b"WebPush: info\x00"
CEK_INFO = b"Content-Encoding: aes128gcm\x00"
NONCE_INFO = b"Content-Encoding: nonce\x00"

# salt(16) || rs(4) || idlen(1) || keyid(65) || ciphertext+tag
EncryptedRecord = bytes


def _decode_key_material(client_public_key_b64: str, auth_secret_b64: str) -> tuple[bytes, bytes]:
    try:
        client_public_key = base64url_decode(client_public_key_b64)
        auth_secret = base64url_decode(auth_secret_b64)
    except MalformedInput as exc:
        raise MalformedKeyMaterial(f"Subscription keys are not valid base64url: {exc}") from exc

    if len(client_public_key) != UNCOMPRESSED_POINT_LENGTH or client_public_key[0] != 0x04:
        raise MalformedKeyMaterial(
            f"p256dh must be a {UNCOMPRESSED_POINT_LENGTH}-byte uncompressed point, got {len(client_public_key)} bytes"
        )
    if len(auth_secret) != AUTH_SECRET_LENGTH:
        raise MalformedKeyMaterial(
            f"auth secret must be {AUTH_SECRET_LENGTH} bytes, got {len(auth_secret)} bytes"
        )
    return client_public_key, auth_secret


def encrypted_length(plaintext_length: int) -> int:
    return HEADER_LENGTH + plaintext_length + len(LAST_RECORD_PAD) + TAG_LENGTH


def encrypt(
    plaintext: bytes,
    client_public_key_b64: str,
    auth_secret_b64: str,
    provider: CryptoProvider = default_provider,
) -> EncryptedRecord:
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if len(plaintext) + len(LAST_RECORD_PAD) + TAG_LENGTH > RECORD_SIZE:
        raise ValueError(f"Payload of {len(plaintext)} bytes does not fit in a single {RECORD_SIZE}-byte record")

    client_public_key, auth_secret = _decode_key_material(client_public_key_b64, auth_secret_b64)
    try:
        client_key = provider.load_public_key(client_public_key)
    except ValueError as exc:
        raise MalformedKeyMaterial(f"p256dh is not a point on P-256: {exc}") from exc

    ephemeral_key = provider.generate_ec_keypair()
    ephemeral_public_key = provider.public_key_bytes(ephemeral_key.public_key())
    shared_secret = provider.ecdh_derive(ephemeral_key, client_key)
    salt = provider.secure_random(SALT_LENGTH)

    key_info = concat([WEBPUSH_INFO, client_public_key, ephemeral_public_key])
    ikm = provider.hkdf_derive(shared_secret, auth_secret, key_info, IKM_LENGTH)
    cek = provider.hkdf_derive(ikm, salt, CEK_INFO, CEK_LENGTH)
    nonce = provider.hkdf_derive(ikm, salt, NONCE_INFO, NONCE_LENGTH)

    ciphertext = provider.aes_gcm_encrypt(cek, nonce, concat([plaintext, LAST_RECORD_PAD]))

    header = concat(
        [
            salt,
            struct.pack(">I", RECORD_SIZE),
            struct.pack("B", len(ephemeral_public_key)),
            ephemeral_public_key,
        ]
    )
    return concat([header, ciphertext])
