# src/bookingdesk/core/security/signature.py
"""Webhook request signatures.

A delivery is authentic when its signature header equals
``sha256=`` + hex(HMAC-SHA256(secret, body || submission_id)). The
submission id is part of the signed message so a captured body cannot
be replayed under a fresh id.

Verification is stateless and fails closed: anything other than the
prefix followed by exactly 64 hex characters is rejected without
computing the HMAC.
"""

from __future__ import annotations

import hashlib
import hmac
import re

SIGNATURE_PREFIX = "sha256="

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{64}")


def compute_signature(secret: str | bytes, submission_id: str, body: bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of body || submission_id."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    mac = hmac.new(key, digestmod=hashlib.sha256)
    mac.update(body)
    mac.update(submission_id.encode("utf-8"))
    return mac.hexdigest()


def sign_payload(secret: str | bytes, submission_id: str, body: bytes) -> str:
    """Return the signature header value for a payload."""
    return SIGNATURE_PREFIX + compute_signature(secret, submission_id, body)


def verify_signature(secret: str | bytes, submission_id: str, body: bytes, provided: str | None) -> bool:
    """Check a signature header value against the payload.

    Args:
        secret: Shared webhook secret
        submission_id: Value of the submission id header
        body: Raw request body bytes, exactly as received
        provided: Value of the signature header (None when absent)

    Returns:
        True only if the signature is well-formed and matches
    """
    if not provided or not provided.startswith(SIGNATURE_PREFIX):
        return False
    digest = provided[len(SIGNATURE_PREFIX) :]
    if not _HEX_DIGEST.fullmatch(digest):
        return False
    expected = compute_signature(secret, submission_id, body)
    return hmac.compare_digest(expected, digest.lower())
