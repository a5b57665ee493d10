# src/bookingdesk/ledger/auth.py
"""Access tokens for the Sheets API.

ServiceAccountTokenProvider implements the OAuth 2.0 JWT bearer grant
for Google service accounts: an RS256-signed assertion is exchanged for
a short-lived access token, which is cached until 60 seconds before it
expires.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from jose import jwt
from jose.exceptions import JOSEError

from bookingdesk.contracts import ConfigurationError, LedgerError
from bookingdesk.core.clock import Clock, system_clock

logger = structlog.get_logger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ASSERTION_LIFETIME_SECONDS = 3600
REFRESH_BUFFER_MS = 60_000


class TokenProvider(Protocol):
    """Supplies bearer tokens for ledger API calls."""

    def access_token(self) -> str: ...

    def invalidate(self) -> None:
        """Forget any cached token (e.g. after a 401)."""
        ...


class StaticTokenProvider:
    """Fixed bearer token (tests, pre-issued tokens)."""

    def __init__(self, token: str) -> None:
        self._token = token

    def access_token(self) -> str:
        return self._token

    def invalidate(self) -> None:
        pass


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """The fields of a service account key file that the JWT grant needs."""

    client_email: str
    private_key_pem: str
    token_uri: str = DEFAULT_TOKEN_URI

    @classmethod
    def from_json(cls, raw: str) -> ServiceAccountCredentials:
        """Parse a service account key file.

        Raises:
            ConfigurationError: If the JSON is invalid or lacks required fields
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Service account credentials are not valid JSON: {e.msg}") from None
        if not isinstance(data, dict):
            raise ConfigurationError("Service account credentials must be a JSON object")
        missing = [field for field in ("client_email", "private_key") if not data.get(field)]
        if missing:
            raise ConfigurationError(f"Service account credentials missing: {', '.join(missing)}")
        return cls(
            client_email=data["client_email"],
            private_key_pem=data["private_key"],
            token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
        )


def build_assertion(credentials: ServiceAccountCredentials, *, issued_at: int, scope: str = SHEETS_SCOPE) -> str:
    """Build the RS256-signed JWT assertion for the token exchange.

    Args:
        credentials: Service account credentials
        issued_at: Issue time in epoch seconds
        scope: OAuth scope requested

    Returns:
        Compact-serialized JWT

    Raises:
        ConfigurationError: If the private key is unreadable or not RSA
    """
    try:
        key = load_pem_private_key(credentials.private_key_pem.encode("utf-8"), password=None)
    except ValueError as e:
        raise ConfigurationError(f"Service account private key could not be loaded: {e}") from None
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Service account private key must be an RSA key")

    claims = {
        "iss": credentials.client_email,
        "scope": scope,
        "aud": credentials.token_uri,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
    }
    try:
        return jwt.encode(claims, credentials.private_key_pem, algorithm="RS256")
    except JOSEError as e:
        raise ConfigurationError(f"Service account assertion could not be signed: {e}") from None


class ServiceAccountTokenProvider:
    """Exchanges signed assertions for access tokens and caches them."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        http_client: httpx.Client,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._credentials = credentials
        self._http = http_client
        self._clock = clock
        self._token: str | None = None
        self._expires_at_ms = 0
        self._lock = threading.Lock()

    def access_token(self) -> str:
        with self._lock:
            now = self._clock()
            if self._token is not None and now < self._expires_at_ms - REFRESH_BUFFER_MS:
                return self._token
            token, expires_in = self._exchange(now)
            self._token = token
            self._expires_at_ms = now + expires_in * 1000
            logger.debug("ledger.token_refreshed", expires_in=expires_in)
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at_ms = 0

    def _exchange(self, now_ms: int) -> tuple[str, int]:
        assertion = build_assertion(self._credentials, issued_at=now_ms // 1000)
        try:
            response = self._http.post(
                self._credentials.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.TransportError as e:
            raise LedgerError(
                f"Token exchange failed: {type(e).__name__}: {e}",
                operation="token",
                retryable=True,
            ) from e

        if response.status_code != 200:
            raise LedgerError(
                f"Token exchange failed with HTTP {response.status_code}",
                status_code=response.status_code,
                operation="token",
                retryable=response.status_code == 429 or response.status_code >= 500,
            )

        try:
            payload: Any = response.json()
        except ValueError:
            raise LedgerError("Token exchange response is not JSON", operation="token") from None
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise LedgerError("Token exchange response has no access_token", operation="token")
        expires_in = payload.get("expires_in", ASSERTION_LIFETIME_SECONDS)
        return token, int(expires_in)
