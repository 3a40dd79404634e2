# Version History
# v1.0 - base64url helpers and byte concatenation shared by signer and encryptor.

from __future__ import annotations

import base64
import binascii
import re
from typing import Iterable

from errors import MalformedInput

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*={0,2}$")


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(text: str) -> bytes:
    if not isinstance(text, str):
        raise MalformedInput("base64url input must be text")

    text = text.strip()
    if not _B64URL_RE.match(text):
        raise MalformedInput("Invalid base64url characters")

    unpadded = text.rstrip("=")
    # A single trailing sextet can never encode a whole byte.
    if len(unpadded) % 4 == 1:
        raise MalformedInput("Invalid base64url length")
    if text != unpadded and len(text) % 4 != 0:
        raise MalformedInput("Invalid base64url padding")

    padded = unpadded + "=" * (-len(unpadded) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInput(str(exc)) from exc


def concat(buffers: Iterable[bytes]) -> bytes:
    return b"".join(buffers)
