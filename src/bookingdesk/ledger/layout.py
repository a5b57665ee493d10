# src/bookingdesk/ledger/layout.py
"""Booking row layout in the ledger spreadsheet.

Columns A-U, one booking per row:

    A transaction_id   H end_location        O notes
    B submission_id    I pickup_time         P driver_name
    C submitted_at     J estimated_distance  Q driver_email
    D customer_name    K estimated_duration  R driver_phone
    E customer_email   L passengers          S status
    F customer_phone   M price               T raw_body
    G start_location   N vehicle_type        U map_url

Appends use USER_ENTERED, so a cell starting with "=", "+", "@" or "-"
would be evaluated as a formula. Free-text phone cells are prefixed with
a quote unless they look like a plain number.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from bookingdesk.contracts import BookingStatus, BookingSummary

TRANSACTION_ID_COLUMN = 0
STATUS_COLUMN = 18
STATUS_COLUMN_LETTER = "S"
ROW_WIDTH = 21

_FORMULA_PREFIXES = ("=", "+", "@", "-")
_NUMERIC_TAIL = re.compile(r"[\d\s().\-]*")


@dataclass(frozen=True)
class DriverContact:
    name: str = ""
    email: str = ""
    phone: str = ""


def sanitize_cell(value: str) -> str:
    """Neutralize a leading formula character.

    "+1 555 0100" stays as typed; "=HYPERLINK(...)" becomes "'=HYPERLINK(...)".
    """
    if value.startswith(_FORMULA_PREFIXES) and not _NUMERIC_TAIL.fullmatch(value[1:]):
        return "'" + value
    return value


def booking_row(
    summary: BookingSummary,
    *,
    transaction_id: str,
    driver: DriverContact,
    raw_body: str,
    status: BookingStatus = BookingStatus.PENDING_REVIEW,
) -> list[str]:
    """Build the A-U cell values for a new booking."""
    row = [
        transaction_id,
        summary.submission_id,
        summary.submitted_at,
        summary.customer_name,
        summary.customer_email,
        sanitize_cell(summary.customer_phone),
        summary.start_location,
        summary.end_location,
        summary.pickup_time,
        summary.estimated_distance,
        summary.estimated_duration,
        summary.passengers,
        summary.price,
        summary.vehicle_type,
        summary.notes,
        driver.name,
        driver.email,
        sanitize_cell(driver.phone),
        status.value,
        raw_body,
        summary.map_url,
    ]
    return row


def status_range(sheet_name: str, row_number: int) -> str:
    return f"{sheet_name}!{STATUS_COLUMN_LETTER}{row_number}:{STATUS_COLUMN_LETTER}{row_number}"
