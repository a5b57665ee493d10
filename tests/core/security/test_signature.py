# tests/core/security/test_signature.py
"""Tests for webhook request signatures."""

import hashlib
import hmac

from bookingdesk.core.security.signature import (
    SIGNATURE_PREFIX,
    compute_signature,
    sign_payload,
    verify_signature,
)

SECRET = "whsec_unit"
BODY = b'{"name":"Ada","email":"ada@example.com"}'
SUBMISSION = "sub_123"


class TestComputeSignature:
    """HMAC-SHA256 over body || submission id."""

    def test_matches_hmac_of_concatenation(self) -> None:
        expected = hmac.new(SECRET.encode(), BODY + SUBMISSION.encode(), hashlib.sha256).hexdigest()
        assert compute_signature(SECRET, SUBMISSION, BODY) == expected

    def test_accepts_bytes_secret(self) -> None:
        assert compute_signature(SECRET.encode(), SUBMISSION, BODY) == compute_signature(SECRET, SUBMISSION, BODY)

    def test_submission_id_is_part_of_the_message(self) -> None:
        """Same body under a different submission id signs differently."""
        assert compute_signature(SECRET, "sub_1", BODY) != compute_signature(SECRET, "sub_2", BODY)

    def test_sign_payload_adds_prefix(self) -> None:
        signature = sign_payload(SECRET, SUBMISSION, BODY)
        assert signature.startswith(SIGNATURE_PREFIX)
        assert len(signature) == len(SIGNATURE_PREFIX) + 64


class TestVerifySignature:
    """Verification fails closed on anything but an exact match."""

    def test_round_trip(self) -> None:
        assert verify_signature(SECRET, SUBMISSION, BODY, sign_payload(SECRET, SUBMISSION, BODY))

    def test_uppercase_hex_accepted(self) -> None:
        digest = compute_signature(SECRET, SUBMISSION, BODY).upper()
        assert verify_signature(SECRET, SUBMISSION, BODY, SIGNATURE_PREFIX + digest)

    def test_missing_signature_rejected(self) -> None:
        assert not verify_signature(SECRET, SUBMISSION, BODY, None)
        assert not verify_signature(SECRET, SUBMISSION, BODY, "")

    def test_missing_prefix_rejected(self) -> None:
        assert not verify_signature(SECRET, SUBMISSION, BODY, compute_signature(SECRET, SUBMISSION, BODY))

    def test_wrong_length_rejected(self) -> None:
        signature = sign_payload(SECRET, SUBMISSION, BODY)
        assert not verify_signature(SECRET, SUBMISSION, BODY, signature[:-1])
        assert not verify_signature(SECRET, SUBMISSION, BODY, signature + "0")

    def test_non_hex_rejected(self) -> None:
        assert not verify_signature(SECRET, SUBMISSION, BODY, SIGNATURE_PREFIX + "z" * 64)

    def test_single_byte_body_change_rejected(self) -> None:
        signature = sign_payload(SECRET, SUBMISSION, BODY)
        tampered = BODY.replace(b"Ada", b"Adb")
        assert not verify_signature(SECRET, SUBMISSION, tampered, signature)

    def test_other_submission_id_rejected(self) -> None:
        signature = sign_payload(SECRET, SUBMISSION, BODY)
        assert not verify_signature(SECRET, "sub_other", BODY, signature)

    def test_wrong_secret_rejected(self) -> None:
        signature = sign_payload("another-secret", SUBMISSION, BODY)
        assert not verify_signature(SECRET, SUBMISSION, BODY, signature)
