# tests/conftest.py
"""Shared test fixtures and helpers.

Fixtures:
- clock: controllable epoch-millisecond clock (FakeClock)
- store: InMemoryStateStore driven by the fake clock
- sheets: in-memory Sheets values API mounted on an httpx.MockTransport
- settings / services: fully wired service graph over the fakes

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import json
import os
import re
from collections import defaultdict
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

import httpx
import pytest
from hypothesis import Phase, Verbosity, settings

from bookingdesk.bootstrap import Services, build_services
from bookingdesk.core.config import (
    BookingDeskSettings,
    DriverSettings,
    LedgerSettings,
    NotificationSettings,
    SecuritySettings,
)
from bookingdesk.core.retry import RetryConfig, RetryManager
from bookingdesk.core.security.signature import sign_payload
from bookingdesk.core.state.store import InMemoryStateStore
from bookingdesk.engine.notifications import DryRunNotifier
from bookingdesk.ledger.auth import StaticTokenProvider

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


WEBHOOK_SECRET = "whsec_test_secret"
PRIMARY_SHEET = "primary-sheet"
BACKUP_SHEET = "backup-sheet"
START_MS = 1_700_000_000_000


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Callable epoch-millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStateStore:
    return InMemoryStateStore(clock=clock)


def no_sleep_retry(max_attempts: int = 3) -> RetryManager:
    """RetryManager with zero backoff that never actually sleeps."""
    return RetryManager(
        RetryConfig(max_attempts=max_attempts, base_delay=0.0, max_delay=1.0, jitter=0.0),
        sleep=lambda _seconds: None,
    )


# =============================================================================
# Fake Sheets API
# =============================================================================

_CELL = re.compile(r"([A-Z]+)(\d*)")


def _column_index(letters: str) -> int:
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def _column_letters(index: int) -> str:
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


class FakeSheets:
    """In-memory Sheets values API (get, append, update).

    Rows live per (spreadsheet id, sheet name). Failures can be queued
    per HTTP method with fail_next().
    """

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], list[list[str]]] = defaultdict(list)
        self.requests: list[httpx.Request] = []
        self._failures: list[tuple[str | None, int]] = []
        self._unavailable: dict[str, int] = {}

    def fail_next(self, status: int, *, times: int = 1, method: str | None = None) -> None:
        self._failures.extend([(method, status)] * times)

    def make_unavailable(self, sheet_id: str, status: int = 503) -> None:
        """Fail every request for one spreadsheet."""
        self._unavailable[sheet_id] = status

    def sheet(self, sheet_id: str, name: str = "Sheet1") -> list[list[str]]:
        return self.rows[(sheet_id, name)]

    def _pop_failure(self, method: str) -> int | None:
        for i, (fail_method, status) in enumerate(self._failures):
            if fail_method is None or fail_method == method:
                del self._failures[i]
                return status
        return None

    @staticmethod
    def _parse_range(range_: str) -> tuple[str, int, int | None, int, int | None]:
        """Return (sheet, first_col, last_col, first_row, last_row); rows are 1-based."""
        sheet, _, cells = range_.partition("!")
        start, _, end = cells.partition(":")
        start_match = _CELL.fullmatch(start)
        end_match = _CELL.fullmatch(end or start)
        assert start_match and end_match, f"unsupported range {range_}"
        first_row = int(start_match.group(2) or 1)
        last_row = int(end_match.group(2)) if end_match.group(2) else None
        return sheet, _column_index(start_match.group(1)), _column_index(end_match.group(1)), first_row, last_row

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        failure = self._pop_failure(request.method)
        if failure is not None:
            return httpx.Response(failure, json={"error": {"code": failure, "message": "injected"}})

        path = unquote(request.url.path)
        match = re.fullmatch(r"/v4/spreadsheets/([^/]+)/values/(.+)", path)
        assert match, f"unexpected path {path}"
        sheet_id, range_ = match.group(1), match.group(2)
        if sheet_id in self._unavailable:
            status = self._unavailable[sheet_id]
            return httpx.Response(status, json={"error": {"code": status, "message": "unavailable"}})
        append = range_.endswith(":append")
        if append:
            range_ = range_[: -len(":append")]
        sheet, first_col, last_col, first_row, last_row = self._parse_range(range_)
        rows = self.rows[(sheet_id, sheet)]

        if request.method == "POST" and append:
            values = json.loads(request.content)["values"][0]
            rows.append([str(v) for v in values])
            n = len(rows)
            return httpx.Response(
                200,
                json={"updates": {"updatedRange": f"{sheet}!A{n}:{_column_letters(len(values) - 1)}{n}"}},
            )

        if request.method == "GET":
            end = last_row if last_row is not None else len(rows)
            selected = [row[first_col : (last_col or 0) + 1] for row in rows[first_row - 1 : end]]
            return httpx.Response(200, json={"range": range_, "values": selected})

        if request.method == "PUT":
            values = json.loads(request.content)["values"]
            for offset, new_row in enumerate(values):
                row = rows[first_row - 1 + offset]
                for col_offset, value in enumerate(new_row):
                    col = first_col + col_offset
                    row.extend([""] * (col + 1 - len(row)))
                    row[col] = str(value)
            return httpx.Response(200, json={"updatedRange": range_})

        return httpx.Response(405)


@pytest.fixture
def sheets() -> FakeSheets:
    return FakeSheets()


@pytest.fixture
def http_client(sheets: FakeSheets) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(sheets.handler))


# =============================================================================
# Wired services
# =============================================================================


@pytest.fixture
def app_settings() -> BookingDeskSettings:
    return BookingDeskSettings(
        security=SecuritySettings(webhook_secret=WEBHOOK_SECRET),
        ledger=LedgerSettings(primary_sheet_id=PRIMARY_SHEET, backup_sheet_id=BACKUP_SHEET),
        notifications=NotificationSettings(
            owner_email="owner@example.com",
            business_name="Coast Shuttles",
            business_phone="+1 555 0100",
            driver=DriverSettings(name="Sam Driver", email="sam@example.com", phone="+1 555 0199"),
        ),
    )


@pytest.fixture
def notifier() -> DryRunNotifier:
    return DryRunNotifier()


@pytest.fixture
def services(
    app_settings: BookingDeskSettings,
    http_client: httpx.Client,
    store: InMemoryStateStore,
    notifier: DryRunNotifier,
    clock: FakeClock,
) -> Services:
    return build_services(
        app_settings,
        http_client=http_client,
        store=store,
        token_provider=StaticTokenProvider("test-token"),
        notifier=notifier,
        retry=no_sleep_retry(),
        clock=clock,
    )


def booking_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+44 20 7946 0000",
        "start_location": "Harbour Terminal",
        "end_location": "Airport T2",
        "pickup_time": "2026-11-02T07:30",
        "distance": "23 km",
        "duration": "28 min",
        "passengers": 2,
        "price": "$64",
    }
    payload.update(overrides)
    return payload


def signed_delivery(
    payload: dict[str, Any] | bytes,
    submission_id: str,
    *,
    secret: str = WEBHOOK_SECRET,
) -> tuple[bytes, dict[str, str]]:
    """Encode a payload and build the headers a genuine delivery carries."""
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {
        "content-type": "application/json",
        "framer-signature": sign_payload(secret, submission_id, body),
        "framer-webhook-submission-id": submission_id,
        "framer-webhook-attempt": "1",
    }
    return body, headers


@pytest.fixture
def deliver() -> Callable[..., tuple[bytes, dict[str, str]]]:
    return signed_delivery


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    return booking_payload
