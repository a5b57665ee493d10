# src/bookingdesk/ledger/client.py
"""Sheets API client with retry classification and write verification.

Every call goes through RetryManager:
- Retryable: HTTP 429, 500, 502, 503, 504, transport errors, and error
  messages matching known transient patterns
- Terminal: any other 4xx
- Exhaustion re-raises the last LedgerError (retryable=True) so callers
  see the real API failure, not a wrapper

An append can be verified by reading back the row named in the
response's updatedRange and checking its first cell.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from bookingdesk.contracts import AppendResult, LedgerError, LedgerWriteVerificationFailed
from bookingdesk.core.retry import MaxRetriesExceeded, RetryManager
from bookingdesk.ledger.auth import TokenProvider

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_TRANSIENT_ERROR_PATTERNS = (
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "connection aborted",
    "econnreset",
    "socket hang up",
    "temporarily unavailable",
    "network unreachable",
    "getaddrinfo failed",
)

# Characters left unescaped in A1 ranges within URL paths
_RANGE_SAFE = "!:'"

# Matches the first row number in ranges like "Sheet1!A5:U5" or "'My Sheet'!A12"
_ROW_IN_RANGE = re.compile(r"![A-Z]+(\d+)")


def is_transient_message(message: str) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in _TRANSIENT_ERROR_PATTERNS)


def is_retryable_error(error: BaseException) -> bool:
    """Classify an exception raised by a ledger call."""
    if isinstance(error, LedgerError):
        return error.retryable
    if isinstance(error, httpx.TransportError):
        return True
    return is_transient_message(str(error))


def row_number_from_range(updated_range: str | None) -> int | None:
    if not updated_range:
        return None
    match = _ROW_IN_RANGE.search(updated_range)
    return int(match.group(1)) if match else None


def sheet_name_from_range(range_: str) -> str:
    """Return the sheet part of an A1 range ("Sheet1!A:Z" -> "Sheet1")."""
    return range_.split("!", 1)[0] if "!" in range_ else range_


class LedgerClient:
    """Thin Sheets v4 values client.

    Usage:
        client = LedgerClient(httpx.Client(timeout=30), token_provider, retry)
        result = client.append(sheet_id, "Sheet1!A:Z", row, verify=True)
        rows = client.read(sheet_id, "Sheet1!A:Z")
        client.update(sheet_id, "Sheet1!S5:S5", [["Accepted"]])
    """

    def __init__(
        self,
        http_client: httpx.Client,
        token_provider: TokenProvider,
        retry: RetryManager,
        *,
        base_url: str = "https://sheets.googleapis.com/v4",
    ) -> None:
        self._http = http_client
        self._tokens = token_provider
        self._retry = retry
        self._base_url = base_url.rstrip("/")

    def _values_url(self, sheet_id: str, range_: str, suffix: str = "") -> str:
        return f"{self._base_url}/spreadsheets/{quote(sheet_id, safe='')}/values/{quote(range_, safe=_RANGE_SAFE)}{suffix}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        sheet_id: str,
        range_: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> Any:
        """Single API call; raises LedgerError with retry classification."""
        headers = {"Authorization": f"Bearer {self._tokens.access_token()}"}
        try:
            response = self._http.request(method, url, params=params, json=json_body, headers=headers)
        except httpx.TransportError as e:
            raise LedgerError(
                f"{operation} failed: {type(e).__name__}: {e}",
                sheet_id=sheet_id,
                range=range_,
                operation=operation,
                retryable=True,
            ) from e

        if response.status_code == 401:
            self._tokens.invalidate()

        if response.status_code >= 400:
            detail = response.text[:500]
            raise LedgerError(
                f"{operation} failed with HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
                sheet_id=sheet_id,
                range=range_,
                operation=operation,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        if not response.content:
            return {}
        return response.json()

    def _with_retry(self, operation: str, sheet_id: str, range_: str, call: Any) -> Any:
        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning(
                "ledger.retry",
                operation=operation,
                sheet_id=sheet_id,
                range=range_,
                attempt=attempt,
                error=str(error),
            )

        try:
            return self._retry.execute_with_retry(call, is_retryable=is_retryable_error, on_retry=on_retry)
        except MaxRetriesExceeded as e:
            last = e.last_error
            if isinstance(last, LedgerError):
                raise last from e
            raise LedgerError(
                f"{operation} failed after {e.attempts} attempts: {last}",
                sheet_id=sheet_id,
                range=range_,
                operation=operation,
                retryable=True,
            ) from e

    def read(self, sheet_id: str, range_: str) -> list[list[str]]:
        """Read a range; missing trailing cells are simply absent from each row."""
        url = self._values_url(sheet_id, range_)
        payload = self._with_retry(
            "read",
            sheet_id,
            range_,
            lambda: self._request("GET", url, operation="read", sheet_id=sheet_id, range_=range_),
        )
        values = payload.get("values", []) if isinstance(payload, dict) else []
        return [[str(cell) for cell in row] for row in values]

    def update(self, sheet_id: str, range_: str, values: list[list[Any]]) -> None:
        url = self._values_url(sheet_id, range_)
        self._with_retry(
            "update",
            sheet_id,
            range_,
            lambda: self._request(
                "PUT",
                url,
                operation="update",
                sheet_id=sheet_id,
                range_=range_,
                params={"valueInputOption": "USER_ENTERED"},
                json_body={"values": values},
            ),
        )

    def append(
        self,
        sheet_id: str,
        range_: str,
        row: list[Any],
        *,
        verify: bool = False,
        critical: bool = True,
    ) -> AppendResult:
        """Append one row.

        Args:
            sheet_id: Spreadsheet id
            range_: Target A1 range (table to append after)
            row: Cell values
            verify: Read the written row back and compare its first cell
            critical: On verification mismatch, raise (True) or log (False)

        Raises:
            LedgerError: API failure (after retries for transient errors)
            LedgerWriteVerificationFailed: Read-back mismatch on a critical write
        """
        url = self._values_url(sheet_id, range_, ":append")
        payload = self._with_retry(
            "append",
            sheet_id,
            range_,
            lambda: self._request(
                "POST",
                url,
                operation="append",
                sheet_id=sheet_id,
                range_=range_,
                params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
                json_body={"values": [row]},
            ),
        )
        updates = payload.get("updates", {}) if isinstance(payload, dict) else {}
        updated_range = updates.get("updatedRange") if isinstance(updates, dict) else None
        result = AppendResult(updated_range=updated_range, row_number=row_number_from_range(updated_range))

        if verify:
            self._verify_append(sheet_id, range_, result, expected=str(row[0]) if row else "", critical=critical)
        return result

    def _verify_append(
        self,
        sheet_id: str,
        range_: str,
        result: AppendResult,
        *,
        expected: str,
        critical: bool,
    ) -> None:
        actual: str | None = None
        if result.row_number is not None:
            sheet = sheet_name_from_range(range_)
            check_range = f"{sheet}!A{result.row_number}:A{result.row_number}"
            rows = self.read(sheet_id, check_range)
            actual = rows[0][0] if rows and rows[0] else None

        if actual == expected:
            return

        logger.warning(
            "ledger.verification_failed",
            sheet_id=sheet_id,
            range=range_,
            updated_range=result.updated_range,
            critical=critical,
        )
        if critical:
            raise LedgerWriteVerificationFailed(
                f"Appended row not found at {result.updated_range or 'unknown range'}",
                sheet_id=sheet_id,
                range=range_,
                expected=expected,
                actual=actual,
            )
