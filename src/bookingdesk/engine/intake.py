# src/bookingdesk/engine/intake.py
"""Webhook intake pipeline.

Gate stages run in order and short-circuit before any side effect:

    authenticate -> parse -> rate limit -> claim submission id

Business processing follows:

    ledger append -> token issuance -> owner alert -> mark processed

Failure handling after the claim:
- ledger append fails: the pending marker is released so the source's
  redelivery is processed again (at-least-once)
- owner alert fails: the booking exists and tokens are issued, so the
  submission is still marked processed and the error propagates
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from bookingdesk.contracts import (
    AuthenticationFailure,
    BookingSummary,
    IntakeResult,
    NotificationError,
    RateLimited,
    ValidationFailure,
)
from bookingdesk.core.clock import Clock, iso_timestamp, system_clock
from bookingdesk.core.identifiers import transaction_id as derive_transaction_id
from bookingdesk.core.rate_limit.limiter import FixedWindowRateLimiter
from bookingdesk.core.security.signature import verify_signature
from bookingdesk.core.state.submissions import SubmissionGuard
from bookingdesk.engine.decisions import DecisionTokenManager
from bookingdesk.engine.messages import MessageComposer
from bookingdesk.engine.notifications import Notifier
from bookingdesk.ledger.bookings import BookingLedger
from bookingdesk.ledger.layout import DriverContact, booking_row

logger = structlog.get_logger(__name__)

# Sheets rejects cells longer than 50,000 characters
MAX_RAW_BODY_CHARS = 50_000

EMAIL_KEYS = ("email", "customer_email", "contact_email", "customerEmail")

# Payload aliases per booking field, first non-empty value wins
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "customer_name": ("customer_name", "name", "customerName"),
    "start_location": ("start_location", "start", "from", "startLocation"),
    "end_location": ("end_location", "end", "to", "endLocation"),
    "pickup_time": ("pickup_time", "pickupTime"),
    "estimated_distance": ("estimated_distance", "distance"),
    "estimated_duration": ("estimated_duration", "duration"),
    "price": ("price", "estimated_price"),
    "passengers": ("passengers", "passenger_count"),
    "customer_phone": ("phone", "phone_number", "contact_phone"),
    "vehicle_type": ("vehicle_type", "vehicleType"),
    "notes": ("notes", "customer_notes", "additional_notes", "special_requests", "message"),
    "map_url": ("map_url", "mapUrl"),
    "submitted_at": ("submitted_at", "submittedAt"),
}

REQUIRED_FIELDS = ("customer_name", "start_location", "end_location", "pickup_time")


@dataclass(frozen=True)
class IntakeHeaders:
    """Names of the headers the webhook source sends."""

    signature: str = "framer-signature"
    submission_id: str = "framer-webhook-submission-id"
    attempt: str = "framer-webhook-attempt"


@dataclass(frozen=True)
class RateLimitPolicy:
    enabled: bool = True
    max_requests: int = 10
    window_seconds: int = 60


def _first(payload: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = payload.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def extract_email(payload: Mapping[str, Any]) -> str:
    """Find the customer email under any of the accepted keys.

    Raises:
        ValidationFailure: No key holds a value containing "@"
    """
    for key in EMAIL_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and "@" in value:
            return value.strip()
    raise ValidationFailure("Missing or invalid customer email")


def extract_booking(payload: Mapping[str, Any], *, submission_id: str, received_at: str) -> BookingSummary:
    """Normalize a webhook payload into a BookingSummary.

    Raises:
        ValidationFailure: Email or a required trip field is missing
    """
    email = extract_email(payload)
    fields = {name: _first(payload, keys) for name, keys in FIELD_ALIASES.items()}
    missing = [name for name in REQUIRED_FIELDS if not fields[name]]
    if missing:
        raise ValidationFailure(f"Missing required fields: {', '.join(missing)}")

    return BookingSummary(
        submission_id=submission_id,
        submitted_at=fields["submitted_at"] or received_at,
        customer_name=fields["customer_name"],
        customer_email=email,
        start_location=fields["start_location"],
        end_location=fields["end_location"],
        pickup_time=fields["pickup_time"],
        estimated_distance=fields["estimated_distance"],
        estimated_duration=fields["estimated_duration"],
        price=fields["price"] or "TBD",
        passengers=fields["passengers"],
        customer_phone=fields["customer_phone"],
        vehicle_type=fields["vehicle_type"],
        notes=fields["notes"],
        map_url=fields["map_url"],
    )


class BookingIntake:
    """Authenticates, deduplicates, and records webhook bookings."""

    def __init__(
        self,
        *,
        webhook_secret: str,
        limiter: FixedWindowRateLimiter,
        guard: SubmissionGuard,
        ledger: BookingLedger,
        decisions: DecisionTokenManager,
        notifier: Notifier,
        composer: MessageComposer,
        driver: DriverContact | None = None,
        headers: IntakeHeaders | None = None,
        rate_limit: RateLimitPolicy | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._secret = webhook_secret
        self._limiter = limiter
        self._guard = guard
        self._ledger = ledger
        self._decisions = decisions
        self._notifier = notifier
        self._composer = composer
        self._driver = driver or DriverContact()
        self._headers = headers or IntakeHeaders()
        self._rate_limit = rate_limit or RateLimitPolicy()
        self._clock = clock

    @property
    def dry_run(self) -> bool:
        return self._notifier.dry_run

    def authenticate(self, body: bytes, headers: Mapping[str, str]) -> str:
        """Verify the delivery signature.

        Returns:
            The submission id

        Raises:
            AuthenticationFailure: Missing headers or bad signature
        """
        signature = headers.get(self._headers.signature)
        submission_id = headers.get(self._headers.submission_id)
        missing = [
            name
            for name, value in ((self._headers.signature, signature), (self._headers.submission_id, submission_id))
            if not value
        ]
        if missing:
            raise AuthenticationFailure(f"Unauthorized: Missing headers - {', '.join(missing)}")
        assert submission_id is not None
        if not verify_signature(self._secret, submission_id, body, signature):
            raise AuthenticationFailure("Unauthorized: Invalid signature")
        return submission_id

    @staticmethod
    def parse(body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationFailure("Invalid JSON body") from None
        if not isinstance(payload, dict):
            raise ValidationFailure("JSON body must be an object")
        return payload

    def _check_rate(self, email: str) -> None:
        if not self._rate_limit.enabled:
            return
        decision = self._limiter.admit(
            email.lower(),
            self._rate_limit.max_requests,
            self._rate_limit.window_seconds,
        )
        if not decision.allowed:
            raise RateLimited(
                "Too many requests. Please wait a moment and try again.",
                reset_at_ms=decision.reset_at_ms,
                now_ms=self._clock(),
            )

    def handle(self, body: bytes, headers: Mapping[str, str]) -> IntakeResult:
        """Run one webhook delivery through the gate and business processing.

        Args:
            body: Raw request body, exactly as signed
            headers: Request headers (case-insensitive mapping)

        Raises:
            AuthenticationFailure, ValidationFailure, RateLimited,
            DuplicateSubmission: Gate rejections, no side effects beyond
                the rate-limit counter
            LedgerError: Primary ledger write failed; submission released
            NotificationError: Owner alert failed; submission processed
        """
        submission_id = self.authenticate(body, headers)
        structlog.contextvars.bind_contextvars(
            submission_id=submission_id,
            attempt=headers.get(self._headers.attempt),
        )

        received_at = iso_timestamp(self._clock())
        payload = self.parse(body)
        booking = extract_booking(payload, submission_id=submission_id, received_at=received_at)
        self._check_rate(booking.customer_email)
        self._guard.claim(submission_id)

        try:
            txn_id, row_number = self._record(booking, body)
        except Exception:
            self._guard.release(submission_id)
            raise

        structlog.contextvars.bind_contextvars(transaction_id=txn_id)
        try:
            tokens = self._decisions.issue(txn_id, booking.customer_name, booking.customer_email)
        except Exception:
            self._guard.release(submission_id)
            raise

        # The row and tokens exist from here on, so a redelivery must not repeat them
        try:
            receipt = self._notifier.send(self._composer.owner_alert(booking, txn_id, tokens))
        except NotificationError as e:
            logger.error("webhook.owner_alert_failed", status_code=e.status_code, error=e.message)
            raise
        finally:
            self._guard.mark_processed(submission_id)

        logger.info("webhook.completed", row=row_number, notification_id=receipt.id)
        return IntakeResult(
            submission_id=submission_id,
            transaction_id=txn_id,
            row_number=row_number,
            received_at=received_at,
            notification=receipt,
        )

    def _record(self, booking: BookingSummary, body: bytes) -> tuple[str, int | None]:
        txn_id = derive_transaction_id(
            customer_name=booking.customer_name,
            start_location=booking.start_location,
            end_location=booking.end_location,
            pickup_time=booking.pickup_time,
            submitted_at=booking.submitted_at,
            customer_email=booking.customer_email,
        )
        raw = body.decode("utf-8", errors="replace")[:MAX_RAW_BODY_CHARS]
        row = booking_row(booking, transaction_id=txn_id, driver=self._driver, raw_body=raw)
        result = self._ledger.append_booking(row)
        return txn_id, result.row_number
