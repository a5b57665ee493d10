"""Records persisted in the state store and the ledger.

State store records serialize to compact JSON. Parsing is strict: a
record that does not match its shape raises ValueError, and callers
decide whether that means "absent" or "fail".
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from bookingdesk.contracts.enums import SubmissionStatus


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class SubmissionRecord:
    """Processing marker for one webhook submission id."""

    status: SubmissionStatus
    updated_at: int  # epoch milliseconds

    def to_json(self) -> str:
        return json.dumps({"status": self.status.value, "updatedAt": self.updated_at})

    @classmethod
    def from_json(cls, raw: str) -> SubmissionRecord:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("submission record must be a JSON object")
        updated_at = data.get("updatedAt")
        if not isinstance(updated_at, int):
            raise ValueError("submission record 'updatedAt' must be an integer")
        return cls(status=SubmissionStatus(_require_str(data, "status")), updated_at=updated_at)


@dataclass(frozen=True)
class DecisionToken:
    """Decision token state stored under token:<kind>:<token>.

    used_at is None until the token is redeemed.
    """

    transaction_id: str
    customer_name: str
    customer_email: str
    created_at: datetime
    used_at: datetime | None = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def mark_used(self, when: datetime) -> DecisionToken:
        return replace(self, used_at=when)

    def to_json(self) -> str:
        data: dict[str, Any] = {
            "transactionId": self.transaction_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "createdAt": self.created_at.isoformat(),
        }
        if self.used_at is not None:
            data["usedAt"] = self.used_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> DecisionToken:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("decision token must be a JSON object")
        used_at = data.get("usedAt")
        return cls(
            transaction_id=_require_str(data, "transactionId"),
            customer_name=_require_str(data, "customerName"),
            customer_email=_require_str(data, "customerEmail"),
            created_at=datetime.fromisoformat(_require_str(data, "createdAt")),
            used_at=datetime.fromisoformat(used_at) if isinstance(used_at, str) else None,
        )


@dataclass(frozen=True)
class BookingSummary:
    """Normalized booking fields extracted from a webhook payload.

    Field values are kept as display strings; the ledger stores them
    unchanged (except for formula sanitization of phone cells).
    """

    submission_id: str
    submitted_at: str
    customer_name: str
    customer_email: str
    start_location: str
    end_location: str
    pickup_time: str
    estimated_distance: str
    estimated_duration: str
    price: str
    passengers: str
    customer_phone: str = ""
    vehicle_type: str = ""
    notes: str = ""
    map_url: str = ""
