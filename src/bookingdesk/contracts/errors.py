"""Error taxonomy for intake, decisions, and ledger access.

Every error a request handler can surface derives from BookingDeskError
and carries the HTTP status the web layer renders for it. Transition
outcomes (already decided, already in target state) are NOT errors; they
are returned as TransitionResult values.
"""

from __future__ import annotations


class BookingDeskError(Exception):
    """Base exception for all bookingdesk errors.

    Attributes:
        http_status: Status code rendered by the web layer
    """

    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BookingDeskError):
    """Required runtime configuration is missing or invalid."""

    http_status = 500


# =============================================================================
# Intake gate errors (short-circuit before any side effect)
# =============================================================================


class AuthenticationFailure(BookingDeskError):
    """Missing headers, malformed signature, or signature mismatch."""

    http_status = 401


class RateLimited(BookingDeskError):
    """Fixed-window request budget exhausted for an identity.

    Attributes:
        reset_at_ms: Epoch milliseconds at which the current window ends
        retry_after_seconds: Whole seconds until the window ends (>= 1)
    """

    http_status = 429

    def __init__(self, message: str, *, reset_at_ms: int, now_ms: int) -> None:
        super().__init__(message)
        self.reset_at_ms = reset_at_ms
        self.retry_after_seconds = max(1, -(-(reset_at_ms - now_ms) // 1000))


class DuplicateSubmission(BookingDeskError):
    """Submission id was already processed (or is still being processed).

    Attributes:
        submission_id: The repeated submission id
        in_flight: True when the earlier delivery has not finished yet
    """

    http_status = 409

    def __init__(self, submission_id: str, *, in_flight: bool = False) -> None:
        super().__init__("Duplicate submission")
        self.submission_id = submission_id
        self.in_flight = in_flight


class ValidationFailure(BookingDeskError):
    """Request body is not valid JSON or lacks a required field."""

    http_status = 400


# =============================================================================
# Decision token errors
# =============================================================================


class InvalidToken(BookingDeskError):
    """Token is malformed or was never issued."""

    http_status = 400


class TokenAlreadyUsed(BookingDeskError):
    """Token has already been redeemed."""

    http_status = 410


class TokenTooYoung(BookingDeskError):
    """Token was redeemed before its minimum age elapsed.

    Guards against link scanners that prefetch URLs the moment an email
    arrives.

    Attributes:
        retry_after_ms: Milliseconds until the token becomes redeemable
    """

    http_status = 425

    def __init__(self, retry_after_ms: int) -> None:
        super().__init__("Decision link opened too soon")
        self.retry_after_ms = retry_after_ms

    @property
    def retry_after_seconds(self) -> int:
        return max(1, -(-self.retry_after_ms // 1000))


class BookingNotFound(BookingDeskError):
    """No ledger row matches the transaction id.

    Rendered as a degraded informational page rather than an error page;
    the token is left unconsumed so the link keeps working once the row
    becomes visible.
    """

    http_status = 200

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Booking not found: {transaction_id}")
        self.transaction_id = transaction_id


# =============================================================================
# Ledger errors
# =============================================================================


class LedgerError(BookingDeskError):
    """Error from the spreadsheet ledger API.

    Attributes:
        status_code: HTTP status returned by the API (None for transport errors)
        sheet_id: Spreadsheet the operation targeted
        range: A1 range the operation targeted
        operation: Operation name (append, read, update, token)
        retryable: Whether the failure is transient
    """

    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        sheet_id: str | None = None,
        range: str | None = None,
        operation: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.sheet_id = sheet_id
        self.range = range
        self.operation = operation
        self.retryable = retryable


class LedgerWriteVerificationFailed(LedgerError):
    """Read-back after an append did not find the expected row."""

    def __init__(
        self,
        message: str,
        *,
        sheet_id: str,
        range: str,
        expected: str,
        actual: str | None,
    ) -> None:
        super().__init__(message, sheet_id=sheet_id, range=range, operation="verify", retryable=False)
        self.expected = expected
        self.actual = actual


# =============================================================================
# Notification errors
# =============================================================================


class NotificationError(BookingDeskError):
    """Email provider rejected or failed to accept a message.

    Attributes:
        status_code: HTTP status returned by the provider (None for transport errors)
    """

    http_status = 502

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
