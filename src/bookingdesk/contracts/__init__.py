"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core,
ledger, engine, or web. Settings classes live in bookingdesk.core.config.

Import patterns:
    from bookingdesk.contracts import BookingStatus, TransitionResult
"""

from bookingdesk.contracts.enums import (
    AuditEvent,
    BookingStatus,
    Decision,
    SubmissionStatus,
    TransitionOutcome,
)
from bookingdesk.contracts.errors import (
    AuthenticationFailure,
    BookingDeskError,
    BookingNotFound,
    ConfigurationError,
    DuplicateSubmission,
    InvalidToken,
    LedgerError,
    LedgerWriteVerificationFailed,
    NotificationError,
    RateLimited,
    TokenAlreadyUsed,
    TokenTooYoung,
    ValidationFailure,
)
from bookingdesk.contracts.records import BookingSummary, DecisionToken, SubmissionRecord
from bookingdesk.contracts.results import (
    AppendResult,
    IntakeResult,
    IssuedTokens,
    LedgerRow,
    NotificationReceipt,
    RateLimitDecision,
    RedemptionResult,
    TransitionResult,
)

__all__ = [
    "AppendResult",
    "AuditEvent",
    "AuthenticationFailure",
    "BookingDeskError",
    "BookingNotFound",
    "BookingStatus",
    "BookingSummary",
    "ConfigurationError",
    "Decision",
    "DecisionToken",
    "DuplicateSubmission",
    "IntakeResult",
    "InvalidToken",
    "IssuedTokens",
    "LedgerError",
    "LedgerRow",
    "LedgerWriteVerificationFailed",
    "NotificationError",
    "NotificationReceipt",
    "RateLimitDecision",
    "RateLimited",
    "RedemptionResult",
    "SubmissionRecord",
    "SubmissionStatus",
    "TokenAlreadyUsed",
    "TokenTooYoung",
    "TransitionOutcome",
    "TransitionResult",
    "ValidationFailure",
]
