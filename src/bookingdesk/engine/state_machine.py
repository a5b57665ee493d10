# src/bookingdesk/engine/state_machine.py
"""Booking decision state machine.

    Pending Review --accept--> Accepted
                   \\-deny---> Denied

Accepted and Denied are terminal. A transition request against a
decided booking is not an error; it yields a tagged TransitionResult
so callers can render "already accepted" versus "already decided
otherwise".

Concurrency: read-then-write without a lock. Two concurrent decisions
on the same pending booking can both observe Pending Review; the later
write wins in the ledger. Decision tokens make this window narrow (one
owner, one email), and _apply is the single place a conditional write
would go if the ledger gains one.
"""

from __future__ import annotations

import structlog

from bookingdesk.contracts import (
    BookingNotFound,
    BookingStatus,
    TransitionOutcome,
    TransitionResult,
)
from bookingdesk.ledger.bookings import BookingLedger

logger = structlog.get_logger(__name__)


class BookingStateMachine:
    """Applies owner decisions to ledger rows."""

    def __init__(self, ledger: BookingLedger) -> None:
        self._ledger = ledger

    def transition(self, transaction_id: str, target: BookingStatus) -> TransitionResult:
        """Move a booking to target if it is still pending review.

        Args:
            transaction_id: Booking to decide
            target: ACCEPTED or DENIED

        Returns:
            TransitionResult tagged APPLIED, ALREADY_IN_TARGET_STATE,
            or ALREADY_DECIDED_OTHERWISE

        Raises:
            BookingNotFound: No row has this transaction id
            LedgerError: Read or write failed after retries
        """
        if target is BookingStatus.PENDING_REVIEW:
            raise ValueError("Pending Review is not a decision target")

        row = self._ledger.find_booking(transaction_id)
        if row is None:
            raise BookingNotFound(transaction_id)

        current = self._ledger.status_of(row)
        if current is target:
            outcome = TransitionOutcome.ALREADY_IN_TARGET_STATE
        elif current is not BookingStatus.PENDING_REVIEW:
            outcome = TransitionOutcome.ALREADY_DECIDED_OTHERWISE
        else:
            self._apply(transaction_id, row.row_number, target)
            current = target
            outcome = TransitionOutcome.APPLIED

        logger.info(
            "booking.transition",
            transaction_id=transaction_id,
            target=target.value,
            outcome=outcome.value,
            status=current.value,
            row=row.row_number,
        )
        return TransitionResult(
            outcome=outcome,
            transaction_id=transaction_id,
            current_status=current,
            row_number=row.row_number,
        )

    def _apply(self, transaction_id: str, row_number: int, target: BookingStatus) -> None:
        self._ledger.write_status(row_number, target)
        self._ledger.mirror_status(transaction_id, target)
