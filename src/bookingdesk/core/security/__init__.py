"""Security utilities: request signatures and secret fingerprints."""

from bookingdesk.core.security.fingerprint import get_fingerprint_key, secret_fingerprint
from bookingdesk.core.security.signature import (
    SIGNATURE_PREFIX,
    compute_signature,
    sign_payload,
    verify_signature,
)

__all__ = [
    "SIGNATURE_PREFIX",
    "compute_signature",
    "get_fingerprint_key",
    "secret_fingerprint",
    "sign_payload",
    "verify_signature",
]
