# src/bookingdesk/ledger/bookings.py
"""Booking repository over the ledger spreadsheets.

Three sheets take part, with different criticality:
- primary: the source of truth. Appends are verified and failures raise.
- backup (optional): a mirror. Failures are logged and swallowed.
- audit (optional): append-only event log. Failures are logged and swallowed.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from bookingdesk.contracts import AppendResult, AuditEvent, BookingStatus, LedgerError, LedgerRow
from bookingdesk.core.clock import Clock, iso_timestamp, system_clock
from bookingdesk.ledger.client import LedgerClient, row_number_from_range, sheet_name_from_range
from bookingdesk.ledger.layout import STATUS_COLUMN, TRANSACTION_ID_COLUMN, status_range

logger = structlog.get_logger(__name__)


class BookingLedger:
    """Reads and writes booking rows.

    Status transitions are plain read-then-write; there is no
    conditional write in the Sheets values API. See
    engine.state_machine for how the race window is handled.
    """

    def __init__(
        self,
        client: LedgerClient,
        *,
        primary_sheet_id: str,
        primary_range: str = "Sheet1!A:Z",
        backup_sheet_id: str | None = None,
        backup_range: str = "Sheet1!A:Z",
        audit_sheet_id: str | None = None,
        audit_range: str = "Audit!A:Z",
        verify_writes: bool = True,
        clock: Clock = system_clock,
    ) -> None:
        self._client = client
        self._primary_sheet_id = primary_sheet_id
        self._primary_range = primary_range
        self._backup_sheet_id = backup_sheet_id
        self._backup_range = backup_range
        self._audit_sheet_id = audit_sheet_id
        self._audit_range = audit_range
        self._verify_writes = verify_writes
        self._clock = clock

    def append_booking(self, row: list[str]) -> AppendResult:
        """Append a booking to the primary sheet, then mirror and audit it.

        Raises:
            LedgerError: Primary append failed (after retries)
            LedgerWriteVerificationFailed: Primary row could not be read back
        """
        result = self._client.append(
            self._primary_sheet_id,
            self._primary_range,
            row,
            verify=self._verify_writes,
            critical=True,
        )
        transaction_id = row[TRANSACTION_ID_COLUMN]
        if self._backup_sheet_id:
            self._non_critical(
                "backup_append",
                transaction_id,
                lambda: self._client.append(self._backup_sheet_id or "", self._backup_range, row, verify=False),
            )
        self.record_audit(transaction_id, AuditEvent.SUBMISSION_RECEIVED, {"row": result.row_number})
        return result

    def _find_in(self, sheet_id: str, range_: str, transaction_id: str) -> LedgerRow | None:
        rows = self._client.read(sheet_id, range_)
        first_row = row_number_from_range(range_) or 1
        for offset, values in enumerate(rows):
            if values and values[TRANSACTION_ID_COLUMN] == transaction_id:
                return LedgerRow(row_number=first_row + offset, values=tuple(values))
        return None

    def find_booking(self, transaction_id: str) -> LedgerRow | None:
        """Locate a booking on the primary sheet by transaction id."""
        return self._find_in(self._primary_sheet_id, self._primary_range, transaction_id)

    @staticmethod
    def status_of(row: LedgerRow) -> BookingStatus:
        """Read a row's status; an empty cell means Pending Review.

        Raises:
            LedgerError: The cell holds a value outside the known statuses
        """
        cell = row.cell(STATUS_COLUMN)
        try:
            return BookingStatus.from_cell(cell)
        except ValueError:
            raise LedgerError(f"Unrecognized booking status {cell!r} in row {row.row_number}", operation="read") from None

    def write_status(self, row_number: int, status: BookingStatus) -> None:
        """Overwrite the status cell of a primary row.

        Raises:
            LedgerError: Update failed (after retries)
        """
        sheet = sheet_name_from_range(self._primary_range)
        self._client.update(self._primary_sheet_id, status_range(sheet, row_number), [[status.value]])

    def mirror_status(self, transaction_id: str, status: BookingStatus) -> None:
        """Copy a status change to the backup sheet and audit it. Never raises."""
        if self._backup_sheet_id:
            backup_id = self._backup_sheet_id

            def _mirror() -> None:
                row = self._find_in(backup_id, self._backup_range, transaction_id)
                if row is None:
                    logger.warning("ledger.backup_row_missing", transaction_id=transaction_id)
                    return
                sheet = sheet_name_from_range(self._backup_range)
                self._client.update(backup_id, status_range(sheet, row.row_number), [[status.value]])

            self._non_critical("backup_status", transaction_id, _mirror)
        self.record_audit(transaction_id, AuditEvent.for_status(status), {"status": status.value})

    def record_audit(self, transaction_id: str, event: AuditEvent, meta: dict[str, Any] | None = None) -> None:
        """Append an audit entry [transaction_id, event, timestamp, meta]. Never raises."""
        if not self._audit_sheet_id:
            return
        audit_id = self._audit_sheet_id
        entry = [transaction_id, event.value, iso_timestamp(self._clock()), json.dumps(meta or {})]
        self._non_critical(
            "audit_append",
            transaction_id,
            lambda: self._client.append(audit_id, self._audit_range, entry, verify=False),
        )

    def _non_critical(self, operation: str, transaction_id: str, call: Any) -> None:
        try:
            call()
        except LedgerError as e:
            logger.warning(
                "ledger.non_critical_failed",
                operation=operation,
                transaction_id=transaction_id,
                status_code=e.status_code,
                error=e.message,
            )
