"""Unit tests for logging service."""

import json

import pytest
import structlog

from src.services.logging_service import configure_logging, get_logger, redact_sensitive


class TestRedactSensitive:
    """Tests for redact_sensitive processor."""

    @pytest.mark.parametrize(
        "key",
        ["api_key", "openai_api_key", "authorization", "client_secret", "smtp_password"],
    )
    def test_redacts_credential_keys(self, key):
        result = redact_sensitive(None, None, {key: "value", "event": "test"})
        assert result[key] == "REDACTED"
        assert result["event"] == "test"

    @pytest.mark.parametrize(
        "key",
        ["otp", "code", "access_token", "refresh_token", "raw_token", "token_hash"],
    )
    def test_redacts_codes_and_session_tokens(self, key):
        result = redact_sensitive(None, None, {key: "value"})
        assert result[key] == "REDACTED"

    def test_token_balance_is_not_redacted(self):
        """Balances are logged as ``tokens``/``balance`` and must stay visible."""
        event_dict = {"tokens": 10000, "balance": 9950, "amount": 50}
        result = redact_sensitive(None, None, event_dict)
        assert result == {"tokens": 10000, "balance": 9950, "amount": 50}

    def test_preserves_non_sensitive_fields(self):
        event_dict = {
            "correlation_id": "abc-123",
            "email": "user@example.com",
            "duration_ms": 100,
        }
        result = redact_sensitive(None, None, dict(event_dict))
        assert result == event_dict

    def test_case_insensitive_redaction(self):
        event_dict = {"API_KEY": "secret1", "Password": "secret2", "OTP": "123456"}
        result = redact_sensitive(None, None, event_dict)
        assert result["API_KEY"] == "REDACTED"
        assert result["Password"] == "REDACTED"
        assert result["OTP"] == "REDACTED"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_get_logger_returns_bound_logger(self):
        configure_logging("INFO")
        logger = get_logger("test_module")
        assert logger is not None
        logger.info("test_event", data="value")

    def test_get_logger_without_name(self):
        configure_logging("INFO")
        assert get_logger() is not None

    def test_output_is_json_with_redaction(self, capsys):
        structlog.reset_defaults()
        configure_logging("INFO")

        structlog.get_logger().info("otp_issued", email="user@example.com", otp="123456")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "otp_issued"
        assert entry["email"] == "user@example.com"
        assert entry["otp"] == "REDACTED"
        assert entry["level"] == "info"


class TestCorrelationIdBinding:
    """Tests for correlation ID context binding."""

    def test_correlation_id_binds_to_context(self):
        configure_logging("INFO")
        structlog.contextvars.clear_contextvars()

        structlog.contextvars.bind_contextvars(correlation_id="test-correlation-123")

        context = structlog.contextvars.get_contextvars()
        assert context.get("correlation_id") == "test-correlation-123"
        structlog.contextvars.clear_contextvars()
