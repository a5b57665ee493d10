# tests/property/test_signature_properties.py
"""Property-based tests for webhook signatures.

The signature covers body || submission id, so any change to either
side must invalidate it.
"""

from hypothesis import assume, given
from hypothesis import strategies as st

from bookingdesk.core.security.signature import SIGNATURE_PREFIX, sign_payload, verify_signature

secrets = st.text(min_size=1, max_size=64)
submission_ids = st.text(
    alphabet=st.characters(min_codepoint=0x21, max_codepoint=0x7E),
    min_size=1,
    max_size=64,
)
bodies = st.binary(max_size=2048)


class TestSignatureProperties:
    @given(secret=secrets, submission_id=submission_ids, body=bodies)
    def test_own_signature_verifies(self, secret: str, submission_id: str, body: bytes) -> None:
        signature = sign_payload(secret, submission_id, body)

        assert signature.startswith(SIGNATURE_PREFIX)
        assert verify_signature(secret, submission_id, body, signature)

    @given(secret=secrets, submission_id=submission_ids, body=bodies)
    def test_uppercase_hex_accepted(self, secret: str, submission_id: str, body: bytes) -> None:
        signature = sign_payload(secret, submission_id, body)
        upper = SIGNATURE_PREFIX + signature[len(SIGNATURE_PREFIX) :].upper()

        assert verify_signature(secret, submission_id, body, upper)

    @given(secret=secrets, submission_id=submission_ids, body=bodies, other=bodies)
    def test_body_change_invalidates(self, secret: str, submission_id: str, body: bytes, other: bytes) -> None:
        assume(body != other)
        signature = sign_payload(secret, submission_id, body)

        assert not verify_signature(secret, submission_id, other, signature)

    @given(secret=secrets, body=bodies, first=submission_ids, second=submission_ids)
    def test_submission_id_change_invalidates(self, secret: str, body: bytes, first: str, second: str) -> None:
        assume(first != second)
        signature = sign_payload(secret, first, body)

        assert not verify_signature(secret, second, body, signature)

    @given(secret=secrets, submission_id=submission_ids, body=bodies, garbage=st.text(max_size=80))
    def test_arbitrary_header_never_raises(self, secret: str, submission_id: str, body: bytes, garbage: str) -> None:
        assert isinstance(verify_signature(secret, submission_id, body, garbage), bool)

    @given(secret=secrets, submission_id=submission_ids, body=bodies)
    def test_other_secret_rejected(self, secret: str, submission_id: str, body: bytes) -> None:
        signature = sign_payload(secret + "x", submission_id, body)

        assert not verify_signature(secret, submission_id, body, signature)
