# bookings/core/notifications.py
"""
Notification fan-out for booking events.

The dispatcher turns ``SideEffect`` values into channel calls:

- push: eligible-translator fan-out (split into immediate and delayed
  batches by per-user preferences), reminders and single-user notices
- email: status-change, reassignment, date and language notices
- SMS: optional fan-out to eligible translators

Every channel call is bounded by a timeout and isolated: a failure is logged
and counted, then the remaining sends continue.  The dispatcher is only ever
invoked after the triggering store write has committed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from bookings.core import texts
from bookings.core.domain import Job, User, job_to_data
from bookings.core.eligibility import EligibilityMatcher
from bookings.core.errors import ChannelDeliveryFailed
from bookings.core.ports import BookingStore, Clock, Mailer, PushChannel, SmsChannel
from bookings.core.state_machine import Audience, EffectKind, SideEffect
from bookings.core.timing import BusinessHours, duration_label
from bookings.infra.logging_config import get_logger, mask_email, mask_phone
from bookings.infra.metrics import AppMetrics

# Effects delivered by email; everything else goes out as push
_EMAIL_EFFECTS = frozenset({
    EffectKind.JOB_CREATED,
    EffectKind.REOPENED,
    EffectKind.ACCEPTED_CONFIRMATION,
    EffectKind.TRANSLATOR_ASSIGNED,
    EffectKind.BOOKING_CANCELLED,
    EffectKind.TRANSLATOR_CANCELLED,
    EffectKind.SESSION_ENDED,
})

# notification_type sent in the push payload, where it differs from the effect kind
_PUSH_TYPES = {
    EffectKind.CUSTOMER_CANCELLED_PUSH: "job_cancelled",
    EffectKind.TRANSLATOR_WITHDREW_PUSH: "job_cancelled",
    EffectKind.JOB_ACCEPTED_PUSH: "job_accepted",
}

_TRANSLATOR_CHANGED_TEMPLATES = {
    Audience.CUSTOMER: "translator_changed",
    Audience.PREVIOUS_TRANSLATOR: "translator_old",
    Audience.NEW_TRANSLATOR: "translator_new",
}


@dataclass
class NotificationContext:
    """Everything a batch of side effects may need to address its recipients."""
    job: Job
    customer: Optional[User] = None
    translator: Optional[User] = None  # active translator, or the one just released
    previous_translator: Optional[User] = None
    new_translator: Optional[User] = None
    language: str = ""

    def recipient(self, audience: Audience) -> Optional[User]:
        return {
            Audience.CUSTOMER: self.customer,
            Audience.TRANSLATOR: self.translator,
            Audience.PREVIOUS_TRANSLATOR: self.previous_translator,
            Audience.NEW_TRANSLATOR: self.new_translator,
        }.get(audience)


class NotificationDispatcher:
    def __init__(
        self,
        matcher: EligibilityMatcher,
        store: BookingStore,
        mailer: Mailer,
        sms: SmsChannel,
        push: PushChannel,
        clock: Clock,
        *,
        business_hours: BusinessHours | None = None,
        sms_from_number: str = "",
        timeout: float = 10.0,
        in_background: bool = True,
        logger: logging.Logger | None = None,
    ):
        self.matcher = matcher
        self.store = store
        self.mailer = mailer
        self.sms = sms
        self.push = push
        self.clock = clock
        self.business_hours = business_hours or BusinessHours()
        self.sms_from_number = sms_from_number
        self.timeout = timeout
        self.in_background = in_background
        self.logger = logger or get_logger(__name__)
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    def submit(self, effects: list[SideEffect], ctx: NotificationContext) -> Awaitable[None]:
        """
        Hand a committed batch of side effects off for delivery.

        In background mode the batch runs as a task and the returned awaitable
        completes immediately; otherwise it is the dispatch itself.
        """
        if not effects:
            return _done()
        if not self.in_background:
            return self.dispatch(effects, ctx)
        task = asyncio.create_task(self.dispatch(effects, ctx))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return _done()

    async def drain(self) -> None:
        """Wait for all background batches (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispatch(self, effects: list[SideEffect], ctx: NotificationContext) -> None:
        if not ctx.language:
            ctx.language = await self.store.get_language_name(ctx.job.from_language_id)

        results = await asyncio.gather(
            *(self._route(effect, ctx) for effect in effects),
            return_exceptions=True,
        )
        for effect, result in zip(effects, results):
            if isinstance(result, BaseException):
                self.logger.error(
                    f"Side effect {effect} failed: {result!r}",
                    extra={"job_id": ctx.job.id},
                )

    async def _route(self, effect: SideEffect, ctx: NotificationContext) -> None:
        kind = effect.kind
        if kind is EffectKind.NOTIFY_TRANSLATORS:
            await self.notify_translators(ctx.job, effect.data.get("exclude_translator_id"))
        elif kind is EffectKind.TRANSLATOR_CHANGED:
            await self._email(
                ctx.recipient(effect.audience), ctx,
                _TRANSLATOR_CHANGED_TEMPLATES[effect.audience],
                use_job_email=effect.audience is Audience.CUSTOMER,
            )
        elif kind is EffectKind.DATE_CHANGED:
            await self._email(
                ctx.recipient(effect.audience), ctx, "date_changed",
                {"old_due": self._format_due(effect.data["old_due"])},
                use_job_email=effect.audience is Audience.CUSTOMER,
            )
        elif kind is EffectKind.LANGUAGE_CHANGED:
            old_language = await self.store.get_language_name(effect.data["old_language_id"])
            await self._email(
                ctx.recipient(effect.audience), ctx, "language_changed",
                {"old_language": old_language},
                use_job_email=effect.audience is Audience.CUSTOMER,
            )
        elif kind is EffectKind.SESSION_REMINDER:
            user = ctx.recipient(effect.audience)
            if user is not None:
                await self.send_session_reminder(user, ctx.job, ctx.language)
        elif kind in _EMAIL_EFFECTS:
            await self.notify_status_change(effect, ctx)
        else:
            await self._single_push(effect, ctx)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def wants_push(self, user: User, job: Job | None = None) -> bool:
        prefs = user.meta.preferences
        if prefs.suppress_all:
            return False
        if job is not None and job.immediate and prefs.suppress_emergency:
            return False
        return True

    def delay_push(self, user: User, now: datetime) -> bool:
        return user.meta.preferences.suppress_nighttime and self.business_hours.is_night(now)

    async def notify_translators(self, job: Job, exclude_translator_id: Optional[int] = None) -> int:
        """Push a new/reopened booking to every eligible translator.  Returns recipients reached."""
        eligible = await self.matcher.eligible_translators(job, exclude_translator_id=exclude_translator_id)
        now = self.clock.now()

        immediate: list[User] = []
        delayed: list[User] = []
        for translator in eligible:
            if not self.wants_push(translator, job):
                continue
            (delayed if self.delay_push(translator, now) else immediate).append(translator)

        language = await self.store.get_language_name(job.from_language_id)
        if job.immediate:
            message = texts.PUSH_EMERGENCY.format(language=language, duration=job.duration)
        else:
            message = texts.PUSH_REGULAR.format(
                language=language, duration=job.duration, due=self._format_due(job.due),
            )
        payload = self._payload(job, "suggested_job")

        self.logger.info(
            f"Push fan-out: {len(immediate)} now, {len(delayed)} delayed",
            extra={"job_id": job.id},
        )
        reached = 0
        for group, is_delayed in ((immediate, False), (delayed, True)):
            if group and await self._deliver(
                "push", f"{len(group)} translators",
                lambda g=group, d=is_delayed: self.push.send(g, job.id, payload, message, d),
            ):
                reached += len(group)
        return reached

    async def send_session_reminder(self, user: User, job: Job, language: str) -> bool:
        if not self.wants_push(user):
            return False
        local_due = job.due.astimezone(self.business_hours.tz)
        message = texts.PUSH_SESSION_REMINDER.format(
            language=language,
            place=f"on site in {job.town}" if job.customer_physical_type else "by phone",
            date=local_due.strftime("%Y-%m-%d"),
            time=local_due.strftime("%H:%M"),
            duration=duration_label(job.duration),
        )
        return await self._push_one(user, job, "session_start_remind", message)

    async def notify_expired(self, job: Job, user: User) -> bool:
        language = await self.store.get_language_name(job.from_language_id)
        message = texts.PUSH_JOB_EXPIRED.format(
            language=language, duration=job.duration, due=self._format_due(job.due),
        )
        return await self._push_one(user, job, "job_expired", message)

    async def _single_push(self, effect: SideEffect, ctx: NotificationContext) -> None:
        user = ctx.recipient(effect.audience)
        if user is None:
            return
        template = {
            EffectKind.CUSTOMER_CANCELLED_PUSH: texts.PUSH_CUSTOMER_CANCELLED,
            EffectKind.TRANSLATOR_WITHDREW_PUSH: texts.PUSH_TRANSLATOR_WITHDREW,
            EffectKind.JOB_ACCEPTED_PUSH: texts.PUSH_JOB_ACCEPTED,
        }[effect.kind]
        message = template.format(
            job_id=ctx.job.id,
            language=ctx.language,
            duration=ctx.job.duration,
            due=self._format_due(ctx.job.due),
        )
        notification_type = _PUSH_TYPES.get(effect.kind, effect.kind.value)
        await self._push_one(user, ctx.job, notification_type, message)

    async def _push_one(self, user: User, job: Job, notification_type: str, message: str) -> bool:
        if not self.wants_push(user):
            self.logger.debug("Push suppressed by preferences", extra={"user_id": user.id, "job_id": job.id})
            return False
        delayed = self.delay_push(user, self.clock.now())
        payload = self._payload(job, notification_type)
        return await self._deliver(
            "push", mask_email(user.email),
            lambda: self.push.send([user], job.id, payload, message, delayed),
        )

    def _payload(self, job: Job, notification_type: str) -> dict[str, Any]:
        return {"notification_type": notification_type, **job_to_data(job)}

    # ------------------------------------------------------------------
    # SMS
    # ------------------------------------------------------------------

    async def notify_translators_sms(self, job: Job, customer: Optional[User] = None) -> int:
        """Text every eligible translator about the booking.  Returns messages delivered."""
        translators = await self.matcher.eligible_translators(job)
        if not translators:
            return 0

        local_due = job.due.astimezone(self.business_hours.tz)
        fields = {
            "date": local_due.strftime("%d.%m.%Y"),
            "time": local_due.strftime("%H:%M"),
            "duration": duration_label(job.duration),
            "job_id": job.id,
        }
        if job.is_physical_only:
            town = job.town or (customer.meta.city if customer else None) or ""
            body = texts.SMS_PHYSICAL.format(town=town, **fields)
        else:
            body = texts.SMS_PHONE.format(**fields)

        async def send_one(translator: User) -> bool:
            if not translator.mobile:
                return False
            return await self._deliver(
                "sms", mask_phone(translator.mobile),
                lambda: self.sms.send(self.sms_from_number, translator.mobile, body),
            )

        results = await asyncio.gather(*(send_one(t) for t in translators))
        sent = sum(1 for ok in results if ok)
        self.logger.info(f"SMS fan-out: {sent}/{len(translators)}", extra={"job_id": job.id})
        return sent

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    async def notify_status_change(self, effect: SideEffect, ctx: NotificationContext) -> bool:
        return await self._email(
            ctx.recipient(effect.audience), ctx, effect.kind.value, effect.data,
            use_job_email=effect.audience is Audience.CUSTOMER,
        )

    async def notify_job_created(self, ctx: NotificationContext) -> bool:
        return await self._email(ctx.customer, ctx, EffectKind.JOB_CREATED.value, use_job_email=True)

    async def notify_translator_changed(self, ctx: NotificationContext) -> None:
        await asyncio.gather(*(
            self._email(ctx.recipient(audience), ctx, template, use_job_email=audience is Audience.CUSTOMER)
            for audience, template in _TRANSLATOR_CHANGED_TEMPLATES.items()
        ))

    async def notify_date_changed(self, ctx: NotificationContext, old_due: datetime) -> None:
        await self.dispatch([
            SideEffect(EffectKind.DATE_CHANGED, audience, {"old_due": old_due})
            for audience in (Audience.CUSTOMER, Audience.TRANSLATOR)
        ], ctx)

    async def notify_language_changed(self, ctx: NotificationContext, old_language_id: int) -> None:
        await self.dispatch([
            SideEffect(EffectKind.LANGUAGE_CHANGED, audience, {"old_language_id": old_language_id})
            for audience in (Audience.CUSTOMER, Audience.TRANSLATOR)
        ], ctx)

    async def _email(
        self,
        user: Optional[User],
        ctx: NotificationContext,
        template_key: str,
        extra: dict[str, Any] | None = None,
        *,
        use_job_email: bool = False,
    ) -> bool:
        if user is None:
            return False
        address = (ctx.job.user_email if use_job_email else None) or user.email
        subject = texts.SUBJECTS[template_key].format(job_id=ctx.job.id)
        context = {
            "user_name": user.name,
            "language": ctx.language,
            "due": self._format_due(ctx.job.due),
            "job": job_to_data(ctx.job),
            **(extra or {}),
        }
        return await self._deliver(
            "email", mask_email(address),
            lambda: self.mailer.send(address, user.name, subject, template_key, context),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _deliver(self, channel: str, recipient: str, send: Callable[[], Awaitable[Any]]) -> bool:
        try:
            await asyncio.wait_for(send(), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failure = exc if isinstance(exc, ChannelDeliveryFailed) else ChannelDeliveryFailed(
                channel, recipient, str(exc) or type(exc).__name__,
            )
            AppMetrics.notification_failed(channel)
            self.logger.warning(f"Delivery failed: {failure.detail}")
            return False
        AppMetrics.notification_sent(channel)
        return True

    def _format_due(self, due: datetime) -> str:
        return due.astimezone(self.business_hours.tz).strftime("%Y-%m-%d %H:%M")


async def _done() -> None:
    return None
