# tests/contracts/test_records.py
"""Tests for state store records and status enums."""

from datetime import UTC, datetime

import pytest

from bookingdesk.contracts import (
    AuditEvent,
    BookingStatus,
    Decision,
    DecisionToken,
    RateLimited,
    SubmissionRecord,
    SubmissionStatus,
)


class TestBookingStatus:
    @pytest.mark.parametrize("cell", ["", "   ", None])
    def test_empty_cell_is_pending(self, cell: str | None) -> None:
        assert BookingStatus.from_cell(cell) is BookingStatus.PENDING_REVIEW

    def test_known_values(self) -> None:
        assert BookingStatus.from_cell(" Accepted ") is BookingStatus.ACCEPTED
        assert BookingStatus.from_cell("Denied") is BookingStatus.DENIED

    def test_unknown_value(self) -> None:
        with pytest.raises(ValueError):
            BookingStatus.from_cell("accepted")


class TestDecision:
    def test_target_status(self) -> None:
        assert Decision.ACCEPT.target_status is BookingStatus.ACCEPTED
        assert Decision.DENY.target_status is BookingStatus.DENIED

    def test_audit_event_for_status(self) -> None:
        assert AuditEvent.for_status(BookingStatus.ACCEPTED) is AuditEvent.STATUS_UPDATED_TO_ACCEPTED
        assert AuditEvent.for_status(BookingStatus.DENIED) is AuditEvent.STATUS_UPDATED_TO_DENIED


class TestSubmissionRecord:
    def test_wire_format(self) -> None:
        record = SubmissionRecord(status=SubmissionStatus.PROCESSED, updated_at=1_700_000_000_000)
        assert record.to_json() == '{"status": "processed", "updatedAt": 1700000000000}'

    @pytest.mark.parametrize(
        "raw",
        ['"processed"', '{"status": "processed"}', '{"status": "done", "updatedAt": 1}', '{"updatedAt": 1}'],
    )
    def test_malformed(self, raw: str) -> None:
        with pytest.raises(ValueError):
            SubmissionRecord.from_json(raw)


class TestDecisionToken:
    def test_used_at_only_written_once_used(self) -> None:
        created = datetime(2026, 10, 17, 8, 0, tzinfo=UTC)
        token = DecisionToken("txn-1", "Ada", "ada@example.com", created_at=created)

        assert "usedAt" not in token.to_json()
        used = token.mark_used(datetime(2026, 10, 17, 8, 5, tzinfo=UTC))
        assert used.is_used
        assert not token.is_used
        assert DecisionToken.from_json(used.to_json()) == used

    def test_missing_field(self) -> None:
        with pytest.raises(ValueError, match="customerEmail"):
            DecisionToken.from_json('{"transactionId": "t", "customerName": "n", "createdAt": "2026-10-17T08:00:00+00:00"}')


class TestRateLimited:
    @pytest.mark.parametrize(("remaining_ms", "seconds"), [(59_001, 60), (1_000, 1), (1, 1), (0, 1), (-50, 1)])
    def test_retry_after_rounds_up(self, remaining_ms: int, seconds: int) -> None:
        error = RateLimited("slow down", reset_at_ms=10_000 + remaining_ms, now_ms=10_000)
        assert error.retry_after_seconds == seconds
        assert error.http_status == 429
