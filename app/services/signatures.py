"""HMAC signing helpers shared by inbound verification and outbound webhooks."""
from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "X-Webhook-Signature"


def sign(payload: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``payload`` keyed with ``secret``."""

    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify(payload: bytes, signature: str | None, secret: str) -> bool:
    """Check ``signature`` against ``payload`` in constant time."""

    if not signature or not isinstance(signature, str):
        return False
    expected = sign(payload, secret)
    # compare_digest only accepts ASCII for str inputs.
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))


__all__ = ["SIGNATURE_HEADER", "sign", "verify"]
