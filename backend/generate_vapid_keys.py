# Version History
# v1.0 - One-off VAPID key pair generation for the .env file.

from __future__ import annotations

import argparse

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from codec import base64url_encode


def generate_vapid_keys() -> tuple[str, str]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_bytes = private_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    private_bytes = private_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return base64url_encode(public_bytes), base64url_encode(private_bytes)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Generate a VAPID key pair for Web Push.")
    parser.add_argument("--subject", default="mailto:hello@kindspread.app", help="contact URI for VAPID_SUBJECT")
    args = parser.parse_args(argv)

    public_key, private_key = generate_vapid_keys()
    print("Add these lines to your .env file (keep the private key secret):\n")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print(f"VAPID_SUBJECT={args.subject}")


if __name__ == "__main__":
    main()
