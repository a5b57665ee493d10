"""Identifier derivation for bookings and decision links."""

import hashlib
import secrets

# 32 random bytes, hex encoded: 64 characters
TOKEN_BYTES = 32


def transaction_id(
    *,
    customer_name: str,
    start_location: str,
    end_location: str,
    pickup_time: str,
    submitted_at: str,
    customer_email: str,
) -> str:
    """Derive a booking's transaction id.

    Lowercase hex SHA-256 of the pipe-joined trip fields. The submission
    timestamp is included, so two identical trips booked at different
    times get different ids.
    """
    material = "|".join([customer_name, start_location, end_location, pickup_time, submitted_at, customer_email])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def new_decision_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)
