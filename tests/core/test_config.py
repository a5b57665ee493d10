# tests/core/test_config.py
"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from bookingdesk.core.config import (
    BookingDeskSettings,
    LedgerSettings,
    NotificationSettings,
    _expand_env_vars,
    load_settings,
    resolve_config,
)

MINIMAL_YAML = """\
security:
  webhook_secret: whsec_from_file
ledger:
  primary_sheet_id: sheet-from-file
  service_account_json: "${TEST_SA_JSON:-}"
notifications:
  owner_email: owner@example.com
"""


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(MINIMAL_YAML)
    return path


class TestDefaults:
    """Schema defaults."""

    def test_empty_settings_are_valid(self) -> None:
        settings = BookingDeskSettings()
        assert settings.rate_limit.max_requests == 10
        assert settings.rate_limit.window_seconds == 60
        assert settings.decisions.minimum_age_ms == 2000
        assert settings.submissions.retention_seconds == 86_400
        assert settings.retry.max_attempts == 3
        assert settings.ledger.primary_range == "Sheet1!A:Z"
        assert settings.ledger.audit_range == "Audit!A:Z"
        assert settings.notifications.dry_run is True

    def test_settings_are_frozen(self) -> None:
        settings = BookingDeskSettings()
        with pytest.raises(ValidationError):
            settings.rate_limit.max_requests = 99  # type: ignore[misc]

    def test_audit_sheet_falls_back_to_backup(self) -> None:
        assert LedgerSettings(backup_sheet_id="b").effective_audit_sheet_id == "b"
        assert LedgerSettings(backup_sheet_id="b", audit_sheet_id="a").effective_audit_sheet_id == "a"
        assert LedgerSettings().effective_audit_sheet_id is None

    def test_resend_requires_api_key(self) -> None:
        with pytest.raises(ValidationError, match="api_key"):
            NotificationSettings(provider="resend")

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BookingDeskSettings(logging={"level": "chatty"})

    def test_public_base_url_trailing_slash_stripped(self) -> None:
        settings = BookingDeskSettings(decisions={"public_base_url": "https://book.example.com/"})
        assert settings.decisions.public_base_url == "https://book.example.com"


class TestLoadSettings:
    """YAML + environment loading through Dynaconf."""

    def test_load_from_file(self, settings_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_SA_JSON", raising=False)
        settings = load_settings(settings_file)
        assert settings.security.webhook_secret == "whsec_from_file"
        assert settings.ledger.primary_sheet_id == "sheet-from-file"
        assert settings.ledger.service_account_json == ""

    def test_env_overrides_nested_key(self, settings_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOOKINGDESK_LEDGER__PRIMARY_SHEET_ID", "sheet-from-env")
        monkeypatch.setenv("BOOKINGDESK_RATE_LIMIT__MAX_REQUESTS", "5")

        settings = load_settings(settings_file)
        assert settings.ledger.primary_sheet_id == "sheet-from-env"
        assert settings.rate_limit.max_requests == 5
        assert settings.security.webhook_secret == "whsec_from_file"

    def test_env_var_expansion(self, settings_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_SA_JSON", '{"client_email": "sa@example.iam"}')

        settings = load_settings(settings_file)
        assert settings.ledger.service_account_json == '{"client_email": "sa@example.iam"}'

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")


class TestExpandEnvVars:
    """${VAR} and ${VAR:-default} expansion."""

    def test_default_used_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BD_UNSET_VAR", raising=False)
        assert _expand_env_vars({"a": "${BD_UNSET_VAR:-fallback}"}) == {"a": "fallback"}

    def test_nested_and_lists(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BD_VAR", "x")
        assert _expand_env_vars({"a": {"b": ["${BD_VAR}", 3]}}) == {"a": {"b": ["x", 3]}}

    def test_unset_without_default_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BD_UNSET_VAR", raising=False)
        with pytest.raises(ValueError, match="BD_UNSET_VAR"):
            _expand_env_vars({"a": "${BD_UNSET_VAR}"})


class TestResolveConfig:
    """Secrets never appear in the resolved configuration."""

    def test_secrets_fingerprinted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BOOKINGDESK_FINGERPRINT_KEY", "fp-key")
        settings = BookingDeskSettings(
            security={"webhook_secret": "whsec_live"},
            notifications={"provider": "resend", "api_key": "re_live"},
        )

        resolved = resolve_config(settings)

        assert "webhook_secret" not in resolved["security"]
        assert len(resolved["security"]["webhook_secret_fingerprint"]) == 64
        assert "api_key_fingerprint" in resolved["notifications"]
        assert "whsec_live" not in str(resolved)
        assert "re_live" not in str(resolved)

    def test_secrets_redacted_without_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BOOKINGDESK_FINGERPRINT_KEY", raising=False)
        settings = BookingDeskSettings(security={"webhook_secret": "whsec_live"})

        resolved = resolve_config(settings)

        assert resolved["security"]["webhook_secret"] == "[REDACTED]"

    def test_empty_secrets_left_as_is(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BOOKINGDESK_FINGERPRINT_KEY", raising=False)
        assert resolve_config(BookingDeskSettings())["security"]["webhook_secret"] == ""
