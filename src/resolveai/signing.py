"""HMAC signature over canonical request bytes.

The job service recomputes HMAC-SHA256 over the raw request body and
compares the base64 form, so the digest encoding here is fixed.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes | str, secret: str) -> str:
    """Return the ``sha256=<base64 digest>`` header value for ``body``."""
    data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    digest = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    return SIGNATURE_PREFIX + base64.b64encode(digest).decode("ascii")


__all__ = ["SIGNATURE_PREFIX", "sign_payload"]
