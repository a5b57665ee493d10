# tests/integration/test_booking_flow.py
"""End-to-end booking flow through the HTTP surface.

Submission -> owner alert -> decision link -> customer email, with the
ledger, state store and clock all shared across steps.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from starlette.testclient import TestClient

from bookingdesk.bootstrap import build_services
from bookingdesk.core.config import BookingDeskSettings
from bookingdesk.core.state.sql_store import SQLStateStore
from bookingdesk.engine.notifications import DryRunNotifier
from bookingdesk.ledger.auth import StaticTokenProvider
from bookingdesk.web.server import create_app
from tests.conftest import BACKUP_SHEET, PRIMARY_SHEET, FakeClock, FakeSheets, no_sleep_retry

Deliver = Callable[..., tuple[bytes, dict[str, str]]]
MakePayload = Callable[..., dict[str, Any]]

_LINK = re.compile(r"/(accept|deny)/([0-9a-f]{64})")


def _links(text: str) -> dict[str, str]:
    return {kind: f"/{kind}/{token}" for kind, token in _LINK.findall(text)}


@pytest.fixture(params=["memory", "sql"])
def client(
    request: pytest.FixtureRequest,
    app_settings: BookingDeskSettings,
    http_client: httpx.Client,
    notifier: DryRunNotifier,
    clock: FakeClock,
) -> TestClient:
    store = SQLStateStore.in_memory(clock=clock) if request.param == "sql" else None
    services = build_services(
        app_settings,
        http_client=http_client,
        store=store,
        token_provider=StaticTokenProvider("test-token"),
        notifier=notifier,
        retry=no_sleep_retry(),
        clock=clock,
    )
    return TestClient(create_app(services))


def test_submit_decide_and_notify(
    client: TestClient,
    deliver: Deliver,
    make_payload: MakePayload,
    sheets: FakeSheets,
    notifier: DryRunNotifier,
    clock: FakeClock,
) -> None:
    body, headers = deliver(make_payload(), "sub_flow")

    submitted = client.post("/webhook", content=body, headers=headers)
    assert submitted.status_code == 200
    transaction_id = submitted.json()["transactionId"]

    # Redelivery of the same submission is not recorded twice
    assert client.post("/webhook", content=body, headers=headers).status_code == 409
    assert len(sheets.sheet(PRIMARY_SHEET)) == 1
    assert sheets.sheet(BACKUP_SHEET)[0][0] == transaction_id

    [alert] = notifier.sent
    links = _links(alert.text)
    assert set(links) == {"accept", "deny"}

    # A link scanner opening the link right away is turned back
    assert client.get(links["accept"]).status_code == 425

    clock.advance(2_000)
    accepted = client.get(links["accept"])
    assert accepted.status_code == 200
    assert "Booking Accepted" in accepted.text
    assert sheets.sheet(PRIMARY_SHEET)[0][18] == "Accepted"
    assert sheets.sheet(BACKUP_SHEET)[0][18] == "Accepted"

    denied = client.get(links["deny"])
    assert denied.status_code == 200
    assert "Decision Already Made" in denied.text
    assert "Current status: Accepted" in denied.text
    assert sheets.sheet(PRIMARY_SHEET)[0][18] == "Accepted"

    assert client.get(links["accept"]).status_code == 410

    customer_emails = [m for m in notifier.sent if m.to == "ada@example.com"]
    assert len(customer_emails) == 1
    assert "confirmed" in customer_emails[0].subject

    audit_events = [row[1] for row in sheets.sheet(BACKUP_SHEET, "Audit")]
    assert audit_events == ["submission_received", "status_updated_to_accepted"]


def test_redelivery_after_ledger_outage(
    client: TestClient,
    deliver: Deliver,
    make_payload: MakePayload,
    sheets: FakeSheets,
) -> None:
    body, headers = deliver(make_payload(), "sub_outage")
    sheets.fail_next(503, times=3, method="POST")

    assert client.post("/webhook", content=body, headers=headers).status_code == 502
    assert client.post("/webhook", content=body, headers=headers).status_code == 200
    assert client.post("/webhook", content=body, headers=headers).status_code == 409
    assert len(sheets.sheet(PRIMARY_SHEET)) == 1
