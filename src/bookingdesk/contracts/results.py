"""Operation outcomes.

These types answer: "What did an operation produce?"
"""

from __future__ import annotations

from dataclasses import dataclass

from bookingdesk.contracts.enums import BookingStatus, Decision, TransitionOutcome


@dataclass(frozen=True)
class RateLimitDecision:
    """Admission decision of the fixed-window rate limiter.

    reset_at_ms is the end of the window the request fell into.
    """

    allowed: bool
    remaining: int
    reset_at_ms: int


@dataclass(frozen=True)
class IssuedTokens:
    """The accept/deny token pair issued for one transaction."""

    accept: str
    deny: str

    def for_decision(self, decision: Decision) -> str:
        return self.accept if decision is Decision.ACCEPT else self.deny


@dataclass(frozen=True)
class AppendResult:
    """Ledger append outcome.

    row_number is parsed from updated_range and is None when the API
    response does not name a row.
    """

    updated_range: str | None
    row_number: int | None


@dataclass(frozen=True)
class LedgerRow:
    """A ledger row located by transaction id (1-based sheet row number)."""

    row_number: int
    values: tuple[str, ...]

    def cell(self, index: int) -> str:
        return self.values[index] if index < len(self.values) else ""


@dataclass(frozen=True)
class TransitionResult:
    """Tagged result of a booking decision transition.

    Fields:
        outcome: Which of the three transition cases applied
        transaction_id: Booking the transition targeted
        current_status: Booking status after the call returns
        row_number: Ledger row that holds the booking
    """

    outcome: TransitionOutcome
    transaction_id: str
    current_status: BookingStatus
    row_number: int

    @property
    def applied(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of redeeming a decision token."""

    decision: Decision
    transition: TransitionResult
    customer_name: str
    customer_email: str


@dataclass(frozen=True)
class NotificationReceipt:
    """Provider acknowledgement of a sent message (id is None in dry-run mode)."""

    id: str | None
    dry_run: bool = False


@dataclass(frozen=True)
class IntakeResult:
    """Outcome of processing an authenticated webhook submission.

    Tokens are kept out of the response body; they only travel inside
    the owner notification.
    """

    submission_id: str
    transaction_id: str
    row_number: int | None
    received_at: str
    notification: NotificationReceipt | None = None
