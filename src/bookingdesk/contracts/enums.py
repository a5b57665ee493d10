"""Status values and outcome kinds used across subsystem boundaries."""

from enum import StrEnum


class BookingStatus(StrEnum):
    """Status of a booking row in the ledger.

    Stored verbatim in the ledger status column (S). An empty cell reads
    as PENDING_REVIEW.
    """

    PENDING_REVIEW = "Pending Review"
    ACCEPTED = "Accepted"
    DENIED = "Denied"

    @classmethod
    def from_cell(cls, value: str | None) -> "BookingStatus":
        """Parse a ledger status cell.

        Raises:
            ValueError: If the cell holds an unknown status
        """
        text = (value or "").strip()
        if not text:
            return cls.PENDING_REVIEW
        return cls(text)


class Decision(StrEnum):
    """Owner decision carried by a decision link."""

    ACCEPT = "accept"
    DENY = "deny"

    @property
    def target_status(self) -> BookingStatus:
        """Ledger status this decision moves a booking to."""
        return BookingStatus.ACCEPTED if self is Decision.ACCEPT else BookingStatus.DENIED


class SubmissionStatus(StrEnum):
    """Processing status of a webhook submission.

    Stored in the state store under submission:<id>. Never reverts from
    PROCESSED to PENDING.
    """

    PENDING = "pending"
    PROCESSED = "processed"


class TransitionOutcome(StrEnum):
    """Result tag of a booking decision transition.

    Values:
        APPLIED: Booking moved from Pending Review to the target status
        ALREADY_IN_TARGET_STATE: Booking already had the target status
        ALREADY_DECIDED_OTHERWISE: Booking already had the opposite decision
    """

    APPLIED = "applied"
    ALREADY_IN_TARGET_STATE = "already_in_target_state"
    ALREADY_DECIDED_OTHERWISE = "already_decided_otherwise"


class AuditEvent(StrEnum):
    """Event names written to the audit sheet."""

    SUBMISSION_RECEIVED = "submission_received"
    STATUS_UPDATED_TO_ACCEPTED = "status_updated_to_accepted"
    STATUS_UPDATED_TO_DENIED = "status_updated_to_denied"

    @classmethod
    def for_status(cls, status: BookingStatus) -> "AuditEvent":
        return cls(f"status_updated_to_{status.value.lower()}")
