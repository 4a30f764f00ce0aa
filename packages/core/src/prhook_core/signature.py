"""Webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the exact request bytes and
sends the result as ``sha256=<hex>``. Verification must therefore run on the
raw body as received, before any JSON parsing: re-serialising a parsed payload
is not guaranteed to reproduce the signed bytes.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str | None) -> bool:
    """Return True if ``signature_header`` is a valid signature of ``raw_body``.

    Never raises: a bad or missing signature is an expected outcome.
    """
    if not secret or not signature_header or raw_body is None:
        return False
    try:
        expected = compute_signature(raw_body, secret).encode("ascii")
        supplied = signature_header.strip().encode("ascii")
    except (UnicodeEncodeError, TypeError, AttributeError) as e:
        logger.debug("Rejecting malformed signature header: %s", e)
        return False
    # Constant time over the content; unequal lengths simply compare False.
    return hmac.compare_digest(expected, supplied)
