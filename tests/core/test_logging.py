# tests/core/test_logging.py
"""Tests for structured logging configuration."""

import json
import logging

import pytest
import structlog


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_get_logger_returns_logger(self) -> None:
        """get_logger returns a bound logger."""
        from bookingdesk.core.logging import get_logger

        logger = get_logger("test")
        assert hasattr(logger, "info")
        assert hasattr(logger, "bind")

    def test_logger_outputs_structured(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Logger outputs structured JSON."""
        from bookingdesk.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").info("test message", key="value")

        log_line = capsys.readouterr().out.strip().split("\n")[-1]
        data = json.loads(log_line)
        assert data["event"] == "test message"
        assert data["key"] == "value"
        assert data["level"] == "info"
        assert "_record" not in data

    def test_context_vars_merged(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Request context bound via contextvars appears on every event."""
        from bookingdesk.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        structlog.contextvars.bind_contextvars(submission_id="sub_1")
        try:
            get_logger("test").info("with context")
        finally:
            structlog.contextvars.clear_contextvars()

        data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
        assert data["submission_id"] == "sub_1"

    def test_stdlib_logger_uses_same_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        """stdlib loggers go through the structlog processor chain."""
        from bookingdesk.core.logging import configure_logging

        configure_logging(json_output=True)
        logging.getLogger("some.library").warning("stdlib message")

        data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
        assert data["event"] == "stdlib message"

    def test_logger_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Logger outputs human-readable in console mode."""
        from bookingdesk.core.logging import configure_logging, get_logger

        configure_logging(json_output=False)
        get_logger("test").info("test message", key="value")

        captured = capsys.readouterr()
        assert "test message" in captured.out
        assert not captured.out.strip().startswith("{")

    def test_noisy_third_party_loggers_silenced(self) -> None:
        """httpx and friends stay at WARNING even in DEBUG mode."""
        from bookingdesk.core.logging import configure_logging

        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_noisy_loggers_never_less_restrictive_than_root(self) -> None:
        from bookingdesk.core.logging import configure_logging

        configure_logging(level="ERROR")
        assert logging.getLogger("httpx").level == logging.ERROR


class TestScrubbing:
    """Credentials and decision links never reach the output."""

    def _last_json(self, capsys: pytest.CaptureFixture[str]) -> dict:
        return json.loads(capsys.readouterr().out.strip().split("\n")[-1])

    def test_credential_fields_redacted(self, capsys: pytest.CaptureFixture[str]) -> None:
        from bookingdesk.core.logging import REDACTED, configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").info("outbound", api_key="re_live_123", Authorization="Bearer abc", status=200)

        data = self._last_json(capsys)
        assert data["api_key"] == REDACTED
        assert data["Authorization"] == REDACTED
        assert data["status"] == 200

    def test_decision_tokens_masked(self, capsys: pytest.CaptureFixture[str]) -> None:
        from bookingdesk.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").info("link", url="https://bookings.example.com/accept/AbC-123_xyz?x=1")

        data = self._last_json(capsys)
        assert data["url"] == "https://bookings.example.com/accept/[redacted]?x=1"

    def test_stdlib_access_line_masked(self, capsys: pytest.CaptureFixture[str]) -> None:
        from bookingdesk.core.logging import configure_logging

        configure_logging(json_output=True)
        logging.getLogger("some.server").warning('"GET /deny/tok_987 HTTP/1.1" 200')

        data = self._last_json(capsys)
        assert "tok_987" not in data["event"]
        assert "/deny/[redacted]" in data["event"]
        assert data["logger"] == "some.server"

    def test_access_log_quiet_at_info(self) -> None:
        from bookingdesk.core.logging import configure_logging

        configure_logging(level="INFO")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
