"""Key-value state: store backends and the duplicate-submission guard."""

from bookingdesk.core.state.sql_store import SQLStateStore
from bookingdesk.core.state.store import InMemoryStateStore, StateStore
from bookingdesk.core.state.submissions import SubmissionGuard

__all__ = [
    "InMemoryStateStore",
    "SQLStateStore",
    "StateStore",
    "SubmissionGuard",
]
