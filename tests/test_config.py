# tests/test_config.py
"""Tests for settings and startup validation"""
import pytest
from pydantic import ValidationError

from bookings.config import Settings, validate_or_warn, warn_on_risky_config


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)

        assert s.app_env == "dev"
        assert s.cancellation_window_hours == 24
        assert s.immediate_lead_minutes == 5
        assert s.business_timezone == "Europe/Stockholm"
        assert s.notifications_in_background is True

    def test_invalid_env_rejected(self):
        with pytest.raises(ValidationError):
            Settings(app_env="banana", _env_file=None)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CANCELLATION_WINDOW_HOURS", "48")
        monkeypatch.setenv("APP_ENV", "staging")

        s = Settings(_env_file=None)

        assert s.cancellation_window_hours == 48
        assert s.app_env == "staging"

    def test_dev_uses_dev_push_credentials(self):
        s = Settings(
            onesignal_dev_app_id="dev-app",
            onesignal_dev_api_key="dev-key",
            onesignal_prod_app_id="prod-app",
            onesignal_prod_api_key="prod-key",
            _env_file=None,
        )
        assert s.push_credentials == ("dev-app", "dev-key")
        assert s.push_enabled is True

    def test_prod_uses_prod_push_credentials(self):
        s = Settings(app_env="prod", onesignal_dev_app_id="dev-app", onesignal_dev_api_key="dev-key", _env_file=None)

        assert s.push_credentials == (None, None)
        assert s.push_enabled is False

    def test_sms_needs_sender_number(self):
        s = Settings(twilio_account_sid="AC1", twilio_auth_token="t", _env_file=None)
        assert s.sms_enabled is False


class TestStartupValidation:
    def test_prod_requires_settings(self):
        s = Settings(app_env="prod", _env_file=None)

        missing = s.validate_required_for_production()

        assert "database_url" in missing
        assert "onesignal_prod_app_id" in missing
        with pytest.raises(RuntimeError):
            validate_or_warn(s)

    def test_dev_only_warns(self):
        s = Settings(_env_file=None)

        assert s.validate_required_for_production() == []
        validate_or_warn(s)

    def test_risky_config_warnings(self):
        s = Settings(
            night_start_hour=6,
            night_end_hour=6,
            channel_timeout_seconds=0,
            translator_role_id=1,
            _env_file=None,
        )

        warnings = warn_on_risky_config(s)

        assert any("night_start_hour" in w for w in warnings)
        assert any("channel_timeout_seconds" in w for w in warnings)
        assert any("role ids overlap" in w for w in warnings)
