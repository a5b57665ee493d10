"""
bookingdesk: Idempotent webhook intake and owner decision workflow for
shuttle bookings.

Bookings arrive as signed webhook deliveries, are recorded in a
spreadsheet ledger, and are accepted or denied through single-use links.
"""

__version__ = "0.1.0"
