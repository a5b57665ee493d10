# src/bookingdesk/core/config.py
"""Configuration schema and loading for bookingdesk.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen after construction.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class SecuritySettings(BaseModel):
    """Webhook authentication settings."""

    model_config = {"frozen": True}

    webhook_secret: str = Field(default="", description="Shared HMAC secret for webhook signatures")
    signature_header: str = Field(default="framer-signature", description="Header carrying sha256=<hex>")
    submission_id_header: str = Field(
        default="framer-webhook-submission-id",
        description="Header carrying the delivery's submission id",
    )
    attempt_header: str = Field(default="framer-webhook-attempt", description="Header carrying the delivery attempt number")


class RateLimitSettings(BaseModel):
    """Fixed-window rate limiting for webhook intake."""

    model_config = {"frozen": True}

    enabled: bool = Field(default=True, description="Enable per-customer rate limiting")
    max_requests: int = Field(default=10, gt=0, description="Requests admitted per window")
    window_seconds: int = Field(default=60, gt=0, description="Window length in seconds")


class SubmissionSettings(BaseModel):
    """Duplicate-submission guard settings."""

    model_config = {"frozen": True}

    retention_seconds: int = Field(default=86_400, gt=0, description="How long submission markers are kept")
    reject_in_flight: bool = Field(
        default=True,
        description="Reject redeliveries whose earlier delivery is still being processed",
    )
    in_flight_lease_seconds: int = Field(
        default=120,
        gt=0,
        description="Age after which a pending marker is treated as abandoned",
    )


class DecisionSettings(BaseModel):
    """Decision link settings."""

    model_config = {"frozen": True}

    minimum_age_ms: int = Field(default=2000, ge=0, description="Minimum token age before redemption")
    used_token_retention_seconds: int = Field(default=300, gt=0, description="Retention of consumed tokens")
    public_base_url: str = Field(default="http://localhost:8000", description="Base URL for decision links")

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LedgerSettings(BaseModel):
    """Spreadsheet ledger settings.

    The audit sheet falls back to the backup sheet when not set, and
    audit entries are skipped when neither is configured.
    """

    model_config = {"frozen": True}

    service_account_json: str = Field(default="", description="Service account credentials (JSON text)")
    primary_sheet_id: str = Field(default="", description="Spreadsheet holding booking rows")
    primary_range: str = Field(default="Sheet1!A:Z", description="A1 range bookings are appended to")
    backup_sheet_id: str | None = Field(default=None, description="Optional mirror spreadsheet")
    backup_range: str = Field(default="Sheet1!A:Z", description="A1 range on the mirror")
    audit_sheet_id: str | None = Field(default=None, description="Spreadsheet for audit entries")
    audit_range: str = Field(default="Audit!A:Z", description="A1 range for audit entries")
    verify_writes: bool = Field(default=True, description="Read back critical appends")
    api_base_url: str = Field(default="https://sheets.googleapis.com/v4", description="Sheets API base URL")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout per request")

    @property
    def effective_audit_sheet_id(self) -> str | None:
        return self.audit_sheet_id or self.backup_sheet_id


class RetrySettings(BaseModel):
    """Retry behavior for ledger calls."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Total attempts including the first")
    initial_delay_seconds: float = Field(default=0.5, ge=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=8.0, gt=0, description="Maximum backoff delay")
    jitter_seconds: float = Field(default=0.25, ge=0, description="Uniform random jitter added to each delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class DriverSettings(BaseModel):
    """Driver contact details shared with customers on acceptance."""

    model_config = {"frozen": True}

    name: str = Field(default="", description="Driver name")
    email: str = Field(default="", description="Driver email")
    phone: str = Field(default="", description="Driver phone number")


class NotificationSettings(BaseModel):
    """Email notification settings."""

    model_config = {"frozen": True}

    provider: Literal["resend", "dry_run"] = Field(default="dry_run", description="Email provider")
    api_key: str = Field(default="", description="Provider API key")
    api_url: str = Field(default="https://api.resend.com/emails", description="Provider send endpoint")
    from_email: str = Field(default="bookings@example.com", description="Sender address")
    owner_email: str = Field(default="", description="Recipient of new-booking alerts")
    business_name: str = Field(default="Shuttle Service", description="Name used in emails and pages")
    business_phone: str = Field(default="", description="Phone number shown to customers")
    timeout_seconds: float = Field(default=15.0, gt=0, description="HTTP timeout per request")
    driver: DriverSettings = Field(default_factory=DriverSettings)

    @model_validator(mode="after")
    def validate_provider_credentials(self) -> NotificationSettings:
        if self.provider == "resend" and not self.api_key:
            raise ValueError("notifications.api_key is required when provider is 'resend'")
        return self

    @property
    def dry_run(self) -> bool:
        return self.provider == "dry_run"


class StateSettings(BaseModel):
    """Key-value state store backend."""

    model_config = {"frozen": True}

    backend: Literal["memory", "sql"] = Field(default="memory", description="State store backend")
    url: str = Field(default="sqlite:///bookingdesk-state.db", description="SQLAlchemy URL for the sql backend")


class LoggingSettings(BaseModel):
    """Logging output settings."""

    model_config = {"frozen": True}

    level: str = Field(default="INFO", description="Root log level")
    json_output: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class ServerSettings(BaseModel):
    """HTTP server bind settings."""

    model_config = {"frozen": True}

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, gt=0, le=65535, description="Bind port")


class BookingDeskSettings(BaseModel):
    """Top-level bookingdesk configuration.

    Every section has defaults so a minimal file only needs the secrets
    and sheet ids.
    """

    model_config = {"frozen": True}

    security: SecuritySettings = Field(default_factory=SecuritySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    submissions: SubmissionSettings = Field(default_factory=SubmissionSettings)
    decisions: DecisionSettings = Field(default_factory=DecisionSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded

    Raises:
        ValueError: If a referenced environment variable is unset and has no default
    """

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)  # None if no default specified
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            raise ValueError(f"Required environment variable '{var_name}' is not set")

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Lowercase dict keys recursively (Dynaconf uppercases env overrides)."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> BookingDeskSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (BOOKINGDESK_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: BOOKINGDESK_LEDGER__PRIMARY_SHEET_ID for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated BookingDeskSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
        ValueError: If a required ${VAR} reference is unset
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="BOOKINGDESK",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lower_keys(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return BookingDeskSettings(**raw_config)


# Secret field names that should be fingerprinted (exact matches)
_SECRET_FIELD_NAMES = frozenset({"api_key", "token", "password", "secret", "service_account_json"})

# Secret field suffixes that should be fingerprinted
_SECRET_FIELD_SUFFIXES = ("_secret", "_key", "_token", "_password")


def _is_secret_field(field_name: str) -> bool:
    return field_name in _SECRET_FIELD_NAMES or field_name.endswith(_SECRET_FIELD_SUFFIXES)


def _fingerprint_secrets(options: dict[str, Any]) -> dict[str, Any]:
    """Recursively replace non-empty secret fields with their fingerprints.

    Without a fingerprint key the secret is replaced by a redaction marker
    instead; a raw secret never leaves this function.
    """
    from bookingdesk.core.security.fingerprint import get_fingerprint_key, secret_fingerprint

    try:
        get_fingerprint_key()
        have_key = True
    except ValueError:
        have_key = False

    def _recurse(d: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                result[key] = _recurse(value)
            elif isinstance(value, str) and value and _is_secret_field(key):
                if have_key:
                    result[f"{key}_fingerprint"] = secret_fingerprint(value)
                else:
                    result[key] = "[REDACTED]"
            else:
                result[key] = value
        return result

    return _recurse(options)


def resolve_config(settings: BookingDeskSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-safe dict for display.

    IMPORTANT: Secrets are fingerprinted (or redacted) in the returned
    dict. Do not use it for runtime operations.
    """
    return _fingerprint_secrets(settings.model_dump(mode="json"))
