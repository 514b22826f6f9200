# bookings/infra/notification_channels.py
"""
Concrete delivery channels.

- Email - SMTP (smtplib in the default executor)
- SMS   - Twilio REST client (blocking client in the default executor)
- Push  - OneSignal REST API over the shared aiohttp session

Every channel raises ``ChannelDeliveryFailed`` on failure; the dispatcher
logs it and moves on.  ``build_channels`` picks the disabled variant for any
channel whose credentials are missing.

Usage:
    mailer, sms, push = build_channels(settings)
    await mailer.send("a@b.se", "Anna", "Subject", "job_accepted", {...})
"""
from __future__ import annotations

import asyncio
import json
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Optional

import aiohttp

from bookings.core.domain import User
from bookings.core.errors import ChannelDeliveryFailed
from bookings.core.timing import BusinessHours
from bookings.infra.clock import SystemClock
from bookings.infra.http_client import get_push_session
from bookings.infra.logging_config import get_logger, mask_email, mask_phone

logger = get_logger(__name__)

PUSH_TITLE = "Interpreter bookings"

_SOUNDS = {
    "emergency_booking": {"android": "emergency_booking", "ios": "emergency_booking.mp3"},
    "normal_booking": {"android": "normal_booking", "ios": "normal_booking.mp3"},
}


# ============================================================================
# EMAIL
# ============================================================================

def render_email_body(display_name: str, subject: str, context: dict[str, Any]) -> str:
    """Plain-text body.  Template content is owned by the mail templates, this is the fallback."""
    lines = [f"Hello {display_name},", "", subject, ""]
    for key in ("language", "due", "session_time", "old_due", "old_language"):
        if context.get(key):
            lines.append(f"{key.replace('_', ' ').capitalize()}: {context[key]}")
    return "\n".join(lines)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        *,
        from_address: str,
        from_name: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address
        self.from_name = from_name

    async def send(
        self, to: str, display_name: str, subject: str, template_key: str, context: dict[str, Any],
    ) -> None:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = formataddr((display_name, to))
        msg["Subject"] = subject
        msg["X-Template"] = template_key
        msg.set_content(render_email_body(display_name, subject, context))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelDeliveryFailed("email", mask_email(to), f"{type(exc).__name__}: {exc}")

        logger.info(f"Email sent: {template_key} -> {mask_email(to)}")

    def _send_smtp(self, msg: EmailMessage) -> None:
        """Send via SMTP (blocking)"""
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)


class DisabledMailer:
    async def send(
        self, to: str, display_name: str, subject: str, template_key: str, context: dict[str, Any],
    ) -> None:
        logger.debug(f"Email disabled, dropped: {template_key} -> {mask_email(to)}")


# ============================================================================
# SMS
# ============================================================================

class TwilioSmsChannel:
    def __init__(self, account_sid: str, auth_token: str) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self._client = None

    def _get_client(self):
        """Get or create Twilio client."""
        if self._client is None:
            from twilio.rest import Client
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    async def send(self, from_number: str, to_number: str, body: str) -> str:
        from twilio.base.exceptions import TwilioException

        loop = asyncio.get_running_loop()
        try:
            message = await loop.run_in_executor(
                None,
                lambda: self._get_client().messages.create(from_=from_number, to=to_number, body=body),
            )
        except TwilioException as exc:
            raise ChannelDeliveryFailed("sms", mask_phone(to_number), str(exc))

        logger.info(f"SMS sent: sid={message.sid[:8]}***, to={mask_phone(to_number)}, status={message.status}")
        return message.status


class DisabledSms:
    async def send(self, from_number: str, to_number: str, body: str) -> str:
        logger.debug(f"SMS disabled, dropped message to {mask_phone(to_number)}")
        return "disabled"


# ============================================================================
# PUSH
# ============================================================================

def user_tag_filters(users: list[User]) -> list[dict[str, str]]:
    """OneSignal tag filters addressing users by email, OR-ed together."""
    filters: list[dict[str, str]] = []
    for i, user in enumerate(users):
        if i:
            filters.append({"operator": "OR"})
        filters.append({"key": "email", "relation": "=", "value": user.email.lower()})
    return filters


class OneSignalPushChannel:
    def __init__(
        self,
        app_id: str,
        api_key: str,
        *,
        api_url: str = "https://onesignal.com/api/v1/notifications",
        business_hours: BusinessHours | None = None,
        clock=None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.app_id = app_id
        self.api_key = api_key
        self.api_url = api_url
        self.business_hours = business_hours or BusinessHours()
        self.clock = clock or SystemClock()
        self._session = session

    def build_fields(
        self,
        recipients: list[User],
        job_id: Optional[int],
        payload: dict[str, Any],
        message: str,
        delayed: bool,
    ) -> dict[str, Any]:
        data = {**payload, "job_id": job_id}
        sound = _SOUNDS["emergency_booking" if payload.get("immediate") == "yes" else "normal_booking"]
        fields: dict[str, Any] = {
            "app_id": self.app_id,
            "filters": user_tag_filters(recipients),
            "data": data,
            "headings": {"en": PUSH_TITLE},
            "contents": {"en": message},
            "ios_badgeType": "Increase",
            "ios_badgeCount": 1,
            "android_sound": sound["android"],
            "ios_sound": sound["ios"],
        }
        if delayed:
            send_after = self.business_hours.next_business_time(self.clock.now())
            fields["send_after"] = send_after.strftime("%Y-%m-%d %H:%M:%S GMT%z")
        return fields

    async def send(
        self,
        recipients: list[User],
        job_id: Optional[int],
        payload: dict[str, Any],
        message: str,
        delayed: bool = False,
    ) -> None:
        if not recipients:
            return
        fields = self.build_fields(recipients, job_id, payload, message, delayed)
        session = self._session or get_push_session()

        try:
            async with session.post(
                self.api_url,
                data=json.dumps(fields),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Basic {self.api_key}",
                },
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise ChannelDeliveryFailed(
                        "push", f"{len(recipients)} users", f"HTTP {resp.status}: {body[:200]}",
                    )
                result = await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise ChannelDeliveryFailed("push", f"{len(recipients)} users", f"{type(exc).__name__}: {exc}")

        logger.info(
            f"Push sent: type={payload.get('notification_type')}, recipients={len(recipients)}, "
            f"delayed={delayed}, id={(result or {}).get('id')}",
            extra={"job_id": job_id},
        )


class DisabledPush:
    async def send(
        self,
        recipients: list[User],
        job_id: Optional[int],
        payload: dict[str, Any],
        message: str,
        delayed: bool = False,
    ) -> None:
        logger.debug(f"Push disabled, dropped {len(recipients)} recipients", extra={"job_id": job_id})


# ============================================================================
# FACTORY
# ============================================================================

def build_channels(settings, *, clock=None) -> tuple:
    """
    Build (mailer, sms, push) from settings.

    Returns the disabled variant for every channel that is not configured.
    """
    if settings.mail_enabled:
        mailer = SmtpMailer(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            from_address=settings.mail_from_address,
            from_name=settings.mail_from_name,
        )
    else:
        logger.info("Email channel not configured, emails are dropped")
        mailer = DisabledMailer()

    if settings.sms_enabled:
        sms = TwilioSmsChannel(settings.twilio_account_sid, settings.twilio_auth_token)
    else:
        logger.info("SMS channel not configured, SMS are dropped")
        sms = DisabledSms()

    if settings.push_enabled:
        app_id, api_key = settings.push_credentials
        push = OneSignalPushChannel(
            app_id,
            api_key,
            api_url=settings.onesignal_api_url,
            business_hours=BusinessHours(
                timezone=settings.business_timezone,
                night_start_hour=settings.night_start_hour,
                night_end_hour=settings.night_end_hour,
            ),
            clock=clock,
        )
    else:
        logger.info(f"Push channel not configured for env={settings.app_env}, pushes are dropped")
        push = DisabledPush()

    return mailer, sms, push
