"""
signatures.py — Keyed Hashes for Gateway Requests and Webhooks

Gateways authenticate requests and callbacks with an HMAC-SHA256 over an
ordered concatenation of fields. The field order and the encoding of the
digest (base64 or hex) are part of each gateway's contract; this module only
provides the primitive and a constant-time comparison.
"""

import base64
import hashlib
import hmac
from typing import Union

BASE64 = "base64"
HEX = "hex"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def hmac_digest(key: Union[str, bytes], *parts, encoding: str = BASE64) -> str:
    """
    Computes HMAC-SHA256 of `parts` concatenated in the given order.

    Args:
        key: Shared secret.
        *parts: Field values; non-string values are formatted with str().
        encoding: 'base64' (default) or 'hex'.

    Returns:
        str: The encoded digest.
    """
    message = b"".join(_to_bytes(part) for part in parts)
    digest = hmac.new(_to_bytes(key), message, hashlib.sha256).digest()
    if encoding == BASE64:
        return base64.b64encode(digest).decode("ascii")
    if encoding == HEX:
        return digest.hex()
    raise ValueError(f"Unsupported digest encoding: {encoding}")


def verify(expected: str, supplied) -> bool:
    """Constant-time equality; a missing signature never matches."""
    if not supplied or not expected:
        return False
    return hmac.compare_digest(_to_bytes(expected), _to_bytes(supplied))
