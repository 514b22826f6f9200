# bookings/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal

from bookings.infra.logging_config import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # Role identifiers (users.user_type)
    customer_role_id: int = 1
    translator_role_id: int = 2
    superadmin_role_id: int = 3

    # Booking rules
    immediate_lead_minutes: int = 5  # due = now + lead time for immediate bookings
    cancellation_window_hours: int = 24
    expiry_near_threshold_hours: int = 90  # due within this many hours -> expire at due
    expiry_far_lead_hours: int = 48  # otherwise expire this many hours before due
    expiry_min_minutes: int = 90  # floor when computed expiry is not after creation

    # Business time window (night-suppressed pushes are delayed to night_end_hour)
    business_timezone: str = "Europe/Stockholm"
    night_start_hour: int = 22
    night_end_hour: int = 7

    # Channel behaviour
    channel_timeout_seconds: float = 10.0
    notifications_in_background: bool = True
    support_phone_number: str = "+46 73 75 86 865"

    # Push (OneSignal), one credential pair per environment
    onesignal_api_url: str = "https://onesignal.com/api/v1/notifications"
    onesignal_prod_app_id: str | None = None
    onesignal_prod_api_key: str | None = None
    onesignal_dev_app_id: str | None = None
    onesignal_dev_api_key: str | None = None

    # SMS (Twilio)
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    sms_from_number: str | None = None

    # Mail (SMTP)
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    mail_from_address: str | None = None
    mail_from_name: str = "Bookings"

    # Database
    database_url: str | None = None
    pg_pool_min: int = 2
    pg_pool_max: int = 20

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def push_credentials(self) -> tuple[str | None, str | None]:
        """(app_id, api_key) for the current environment; non-prod uses the dev pair."""
        if self.is_production:
            return self.onesignal_prod_app_id, self.onesignal_prod_api_key
        return self.onesignal_dev_app_id, self.onesignal_dev_api_key

    @property
    def push_enabled(self) -> bool:
        app_id, api_key = self.push_credentials
        return bool(app_id and api_key)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.sms_from_number)

    @property
    def mail_enabled(self) -> bool:
        return bool(self.smtp_host and self.mail_from_address)

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("database_url", self.database_url),
            ("onesignal_prod_app_id", self.onesignal_prod_app_id),
            ("onesignal_prod_api_key", self.onesignal_prod_api_key),
            ("smtp_host", self.smtp_host),
            ("mail_from_address", self.mail_from_address),
        ]
        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.push_enabled:
        warnings.append(f"{s.app_env}: push credentials missing (translator fan-out is disabled).")
    if not s.sms_enabled:
        warnings.append("SMS channel is not configured (twilio_account_sid/auth_token/sms_from_number).")
    if not s.mail_enabled:
        warnings.append("Mail channel is not configured (smtp_host/mail_from_address).")
    if s.night_start_hour == s.night_end_hour:
        warnings.append("night_start_hour == night_end_hour: night-time push delay never applies.")
    if s.channel_timeout_seconds <= 0:
        warnings.append("channel_timeout_seconds <= 0: every channel call will time out immediately.")
    if len({s.customer_role_id, s.translator_role_id, s.superadmin_role_id}) < 3:
        warnings.append("role ids overlap: customer/translator/superadmin must be distinct.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()
    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        logger.warning("[config] %s", msg)


settings = Settings()
validate_or_warn(settings)
