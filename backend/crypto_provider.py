# Version History
# v1.0 - Injectable cryptography capability backed by the `cryptography` package.

from __future__ import annotations

import os
from typing import Callable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

CURVE = ec.SECP256R1()
UNCOMPRESSED_POINT_LENGTH = 65
COORDINATE_LENGTH = 32


class CryptoProvider:
    """Primitive operations used by the VAPID signer and the message encryptor.

    Tests substitute deterministic randomness by passing ``random_bytes`` or by
    overriding ``generate_ec_keypair``.
    """

    def __init__(self, random_bytes: Callable[[int], bytes] = os.urandom) -> None:
        self._random_bytes = random_bytes

    def secure_random(self, length: int) -> bytes:
        return self._random_bytes(length)

    def generate_ec_keypair(self) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(CURVE)

    def public_key_bytes(self, public_key: ec.EllipticCurvePublicKey) -> bytes:
        return public_key.public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint,
        )

    def load_public_key(self, raw: bytes) -> ec.EllipticCurvePublicKey:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)

    def ecdh_derive(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        peer_public_key: ec.EllipticCurvePublicKey,
    ) -> bytes:
        return private_key.exchange(ec.ECDH(), peer_public_key)

    def hkdf_derive(self, key: bytes, salt: bytes, info: bytes, length: int) -> bytes:
        return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(key)

    def aes_gcm_encrypt(self, key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
        # Output carries the 16-byte tag appended by the cipher.
        return AESGCM(key).encrypt(nonce, plaintext, None)

    def ecdsa_sign(self, private_key: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
        """Sign with ES256 and return the JOSE raw ``r || s`` form (64 bytes)."""
        der = private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(COORDINATE_LENGTH, "big") + s.to_bytes(COORDINATE_LENGTH, "big")


default_provider = CryptoProvider()
