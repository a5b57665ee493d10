# src/bookingdesk/core/security/fingerprint.py
"""Secret fingerprinting using HMAC-SHA256.

Secrets (webhook secret, API keys, service account credentials) must
never appear in logs or in the resolved configuration. Instead, we show
a fingerprint that can confirm "same secret is configured" without
revealing the value.

Usage:
    from bookingdesk.core.security import secret_fingerprint

    # With explicit key
    fp = secret_fingerprint(api_key, key=signing_key)

    # With environment variable (BOOKINGDESK_FINGERPRINT_KEY)
    fp = secret_fingerprint(api_key)
"""

from __future__ import annotations

import hashlib
import hmac
import os

_ENV_VAR = "BOOKINGDESK_FINGERPRINT_KEY"


def get_fingerprint_key() -> bytes:
    """Get the fingerprint key from the environment.

    Returns:
        The fingerprint key as bytes

    Raises:
        ValueError: If BOOKINGDESK_FINGERPRINT_KEY is not set
    """
    env_key = os.environ.get(_ENV_VAR)
    if env_key:
        return env_key.encode("utf-8")
    raise ValueError(f"Fingerprint key not configured. Set {_ENV_VAR}.")


def secret_fingerprint(secret: str, *, key: bytes | None = None) -> str:
    """Compute HMAC-SHA256 fingerprint of a secret.

    Args:
        secret: The secret value to fingerprint
        key: HMAC key. If not provided, reads from BOOKINGDESK_FINGERPRINT_KEY.

    Returns:
        64-character hex string (SHA256 digest)

    Raises:
        ValueError: If key is None and BOOKINGDESK_FINGERPRINT_KEY not set

    Example:
        >>> fp = secret_fingerprint("re_abc123", key=b"my-signing-key")
        >>> len(fp)
        64
    """
    if key is None:
        key = get_fingerprint_key()

    return hmac.new(
        key=key,
        msg=secret.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()
