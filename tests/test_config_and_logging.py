"""
Tests for configuration and logging setup.
"""
import json
import logging

import pytest
from pydantic import ValidationError

from src.shared.config import (
    DeliverySettings, Environment, MonitoringSettings, SecuritySettings, Settings,
    get_config_summary, get_settings, validate_configuration
)
from src.shared.logging_config import (
    CorrelationContext, CorrelationFilter, JSONFormatter, get_correlation_id
)


class TestDeliverySettings:
    """Test outbound delivery configuration."""

    def test_defaults(self):
        settings = DeliverySettings()

        assert settings.timeout_seconds == 15.0
        assert settings.max_attempts == 3
        assert settings.backoff_base_seconds == 1.0
        assert settings.backoff_cap_seconds == 10.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("WEBHOOK_TIMEOUT_SECONDS", "2.5")

        settings = DeliverySettings()

        assert settings.max_attempts == 5
        assert settings.timeout_seconds == 2.5

    @pytest.mark.parametrize("field, value", [
        ("max_attempts", 0),
        ("max_attempts", 11),
        ("timeout_seconds", 0),
        ("backoff_base_seconds", -1),
    ])
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            DeliverySettings(**{field: value})


class TestSettings:
    def test_callback_url(self):
        settings = Settings(public_base_url="https://relay.example.com/")

        assert settings.callback_url_for("bc-1") == "https://relay.example.com/api/agent-webhooks/bc-1"

    def test_security_defaults_are_permissive(self):
        settings = SecuritySettings()

        assert settings.reject_unsigned_webhooks is False
        assert settings.expected_user_agent is None

    def test_reject_unsigned_from_env(self, monkeypatch):
        monkeypatch.setenv("REJECT_UNSIGNED_WEBHOOKS", "true")

        assert SecuritySettings().reject_unsigned_webhooks is True

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(log_format="xml")

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()

        assert get_settings() is get_settings()

    def test_production_warnings(self):
        settings = Settings(environment=Environment.PRODUCTION)

        warnings = validate_configuration(settings)

        assert any("REJECT_UNSIGNED_WEBHOOKS" in w for w in warnings)

    def test_summary_hides_secrets(self):
        settings = Settings(environment=Environment.TESTING)
        settings.inbound_email.api_key = "super-secret-key"

        summary = get_config_summary(settings)

        assert summary["external_services"]["inbound_email_configured"] is True
        assert "super-secret-key" not in json.dumps(summary, default=str)


class TestLogging:
    """Test correlation tracking and JSON output."""

    def test_correlation_context(self):
        with CorrelationContext("corr-123", "bc-1"):
            assert get_correlation_id() == "corr-123"

        assert get_correlation_id() is None

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("relay", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        record.callback_url = "https://example.com/hook"

        with CorrelationContext("corr-123", "bc-1"):
            CorrelationFilter().filter(record)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hello world"
        assert entry["correlation_id"] == "corr-123"
        assert entry["job_id"] == "bc-1"
        assert entry["callback_url"] == "https://example.com/hook"
        assert "args" not in entry
