"""Spreadsheet ledger: API client, access tokens, row layout, booking repository."""

from bookingdesk.ledger.auth import (
    ServiceAccountCredentials,
    ServiceAccountTokenProvider,
    StaticTokenProvider,
    TokenProvider,
)
from bookingdesk.ledger.bookings import BookingLedger
from bookingdesk.ledger.client import LedgerClient
from bookingdesk.ledger.layout import DriverContact, booking_row, sanitize_cell

__all__ = [
    "BookingLedger",
    "DriverContact",
    "LedgerClient",
    "ServiceAccountCredentials",
    "ServiceAccountTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "booking_row",
    "sanitize_cell",
]
