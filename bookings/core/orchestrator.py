# bookings/core/orchestrator.py
"""
Booking use cases.

``BookingOrchestrator`` is the application service layer.  Every use case
follows the same workflow:

    load actor -> open transaction -> re-read job -> decide -> write
    -> commit -> dispatch notifications -> return BookingResult

Expected business outcomes (validation, conflicts, refusals) come back as
``BookingResult`` values.  Only unexpected faults propagate.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Optional

from bookings.core import texts
from bookings.core.assignments import AssignmentManager
from bookings.core.cancellation import CancellationPolicy
from bookings.core.domain import (
    HISTORY_STATUSES,
    OPEN_STATUSES,
    Job,
    JobStatus,
    TranslatorAssignment,
    User,
    certification_from_job_for,
    gender_from_job_for,
    job_to_data,
    job_type_for_consumer,
)
from bookings.core.eligibility import EligibilityMatcher
from bookings.core.errors import (
    AlreadyAssigned,
    AlreadyBooked,
    BookingError,
    BookingResult,
    NotFound,
    PermissionDenied,
    TRANSITION_REFUSED,
    ValidationFailed,
)
from bookings.core.notifications import NotificationContext, NotificationDispatcher
from bookings.core.ports import BookingStore, Clock
from bookings.core.state_machine import (
    Audience,
    EffectKind,
    JobStateMachine,
    SideEffect,
    TransitionRequest,
    field_change_effects,
)
from bookings.core.timing import (
    BusinessHours,
    format_session_time,
    immediate_due,
    parse_due,
    will_expire_at,
)
from bookings.infra.logging_config import LogContext, get_logger
from bookings.infra.metrics import AppMetrics

HISTORY_PAGE_SIZE = 15


# ============================================================================
# REQUESTS
# ============================================================================

@dataclass
class BookingRequest:
    from_language_id: Optional[int] = None
    due_date: Optional[str] = None  # MM/DD/YYYY
    due_time: Optional[str] = None  # HH:MM
    duration: Optional[int] = None
    immediate: bool = False
    customer_phone_type: Optional[bool] = None
    customer_physical_type: Optional[bool] = None
    job_for: list[str] = field(default_factory=list)
    by_admin: bool = False
    specific_translator_id: Optional[int] = None


@dataclass
class BookingConfirmation:
    user_email: Optional[str] = None
    reference: str = ""
    address: Optional[str] = None
    instructions: Optional[str] = None
    town: Optional[str] = None


@dataclass
class JobUpdate:
    """Admin edit of a booking.  ``None`` means "leave as is"."""
    status: Optional[JobStatus] = None
    due: Optional[datetime] = None
    from_language_id: Optional[int] = None
    admin_comments: str = ""
    reference: Optional[str] = None
    session_time: Optional[str] = None
    translator_id: Optional[int] = None
    translator_email: Optional[str] = None


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class BookingOrchestrator:
    def __init__(
        self,
        *,
        store: BookingStore,
        matcher: EligibilityMatcher,
        assignments: AssignmentManager,
        state_machine: JobStateMachine,
        cancellation: CancellationPolicy,
        notifier: NotificationDispatcher,
        clock: Clock,
        customer_role_id: int = 1,
        translator_role_id: int = 2,
        immediate_lead_minutes: int = 5,
        business_hours: BusinessHours | None = None,
        expire_at=will_expire_at,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.assignments = assignments
        self.state_machine = state_machine
        self.cancellation = cancellation
        self.notifier = notifier
        self.clock = clock
        self.customer_role_id = customer_role_id
        self.translator_role_id = translator_role_id
        self.immediate_lead_minutes = immediate_lead_minutes
        self.business_hours = business_hours or BusinessHours()
        self.expire_at = expire_at
        self.logger = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_booking(self, user_id: int, request: BookingRequest) -> BookingResult:
        with AppMetrics.track_use_case("create_booking"):
            try:
                user = await self._require_user(user_id)
                if user.user_type != self.customer_role_id:
                    raise PermissionDenied("Translator cannot create booking")
                job = self._build_job(user, request, self.clock.now())

                async with self.store.transaction() as tx:
                    job = await tx.create_job(job)
            except BookingError as exc:
                return self._fail("create_booking", exc, user_id=user_id)

        AppMetrics.booking_created(job.job_type.value)
        self.logger.info(
            f"Booking created ({'immediate' if job.immediate else 'regular'})",
            extra={"job_id": job.id, "user_id": user_id},
        )
        return BookingResult.success(data={
            "id": job.id,
            "type": "immediate" if job.immediate else "regular",
            "customer_physical_type": job.customer_physical_type,
            "customer_town": user.meta.city,
            "customer_type": user.meta.customer_type,
        })

    def _build_job(self, user: User, request: BookingRequest, now: datetime) -> Job:
        if request.from_language_id is None:
            raise ValidationFailed("You must fill in all fields", field_name="from_language_id")
        if not request.immediate:
            for name in ("due_date", "due_time", "duration"):
                if not getattr(request, name):
                    raise ValidationFailed("You must fill in all fields", field_name=name)

        if request.customer_phone_type is None and request.customer_physical_type is None:
            raise ValidationFailed("You must choose phone or physical", field_name="customer_phone_type")
        phone = bool(request.customer_phone_type)
        physical = bool(request.customer_physical_type)

        if request.immediate:
            due = immediate_due(now, self.immediate_lead_minutes)
            phone = True
            expires = None
        else:
            due = parse_due(request.due_date, request.due_time, self.business_hours)
            if due <= now:
                raise ValidationFailed("Can't create booking in the past", field_name="due_date")
            expires = self.expire_at(due, now)

        return Job(
            id=None,
            user_id=user.id,
            status=JobStatus.PENDING,
            due=due,
            from_language_id=request.from_language_id,
            duration=request.duration or 0,
            gender=gender_from_job_for(request.job_for),
            certification=certification_from_job_for(request.job_for),
            job_type=job_type_for_consumer(user.meta.consumer_type),
            immediate=request.immediate,
            customer_phone_type=phone,
            customer_physical_type=physical,
            by_admin=request.by_admin,
            specific_translator_id=request.specific_translator_id,
            will_expire_at=expires,
            created_at=now,
            updated_at=now,
        )

    async def confirm_booking(self, job_id: int, confirmation: BookingConfirmation) -> BookingResult:
        with AppMetrics.track_use_case("confirm_booking"):
            try:
                async with self.store.transaction(job_id) as tx:
                    job = await self._require_job(tx, job_id)
                    customer = await self._require_user(job.user_id)
                    job.user_email = confirmation.user_email
                    job.reference = confirmation.reference or ""
                    if confirmation.address:
                        job.address = confirmation.address or customer.meta.address
                        job.instructions = confirmation.instructions or customer.meta.instructions
                        job.town = confirmation.town or customer.meta.city
                    job.updated_at = self.clock.now()
                    job = await tx.save_job(job)
            except BookingError as exc:
                return self._fail("confirm_booking", exc, job_id=job_id)

        effects = [
            SideEffect(EffectKind.JOB_CREATED, Audience.CUSTOMER),
            SideEffect(EffectKind.NOTIFY_TRANSLATORS, Audience.TRANSLATORS),
        ]
        await self.notifier.submit(effects, NotificationContext(job, customer=customer))
        return BookingResult.success(data={"job": job_to_data(job, customer_type=customer.meta.customer_type)},
                                     side_effects=effects)

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    async def accept_job(self, job_id: int, translator_id: int) -> BookingResult:
        return await self._accept(job_id, translator_id, push_customer=False)

    async def accept_job_with_id(self, job_id: int, translator_id: int) -> BookingResult:
        return await self._accept(job_id, translator_id, push_customer=True)

    async def _accept(self, job_id: int, translator_id: int, *, push_customer: bool) -> BookingResult:
        log = LogContext(self.logger, job_id=job_id, translator_id=translator_id)
        with AppMetrics.track_use_case("accept_job"):
            try:
                translator = await self._require_user(translator_id)
                async with self.store.transaction(job_id, translator_id=translator_id) as tx:
                    job, _ = await self.assignments.assign(tx, job_id, translator_id, self.clock.now())
            except (AlreadyAssigned, AlreadyBooked) as exc:
                log.info(f"Accept lost: {exc.code}")
                return await self._accept_conflict(job_id, exc)
            except BookingError as exc:
                return self._fail("accept_job", exc, job_id=job_id, translator_id=translator_id)

        customer = await self.store.get_user(job.user_id)
        language = await self.store.get_language_name(job.from_language_id)
        effects = [SideEffect(EffectKind.ACCEPTED_CONFIRMATION, Audience.CUSTOMER)]
        if push_customer:
            effects.append(SideEffect(EffectKind.JOB_ACCEPTED_PUSH, Audience.CUSTOMER))
        await self.notifier.submit(
            effects, NotificationContext(job, customer=customer, translator=translator, language=language),
        )
        log.info("Job accepted")
        return BookingResult.success(
            f"You have accepted the booking for {language} interpreter, {job.duration} min",
            data={"job": job_to_data(job)},
            side_effects=effects,
        )

    async def _accept_conflict(self, job_id: int, exc: BookingError) -> BookingResult:
        job = await self.store.get_job(job_id)
        result = BookingResult.fail(exc)
        if job is not None:
            template = texts.ACCEPT_CONFLICT if isinstance(exc, AlreadyBooked) else texts.ACCEPT_TAKEN
            result.message = template.format(
                language=await self.store.get_language_name(job.from_language_id),
                duration=job.duration,
                due=job.due.astimezone(self.business_hours.tz).strftime("%Y-%m-%d %H:%M"),
            )
        return result

    # ------------------------------------------------------------------
    # Admin update
    # ------------------------------------------------------------------

    async def update_job(self, job_id: int, update: JobUpdate, acting_user_id: int) -> BookingResult:
        log = LogContext(self.logger, job_id=job_id, user_id=acting_user_id)
        with AppMetrics.track_use_case("update_job"):
            try:
                if update.due is not None and update.due.utcoffset() is None:
                    raise ValidationFailed("Due date must include a timezone offset", field_name="due")
                actor = await self._require_user(acting_user_id)
                async with self.store.transaction(job_id) as tx:
                    job = await self._require_job(tx, job_id)
                    now = self.clock.now()
                    change_log: list[dict[str, Any]] = []

                    current = await tx.get_active_assignment(job_id)
                    previous_translator_id = current.translator_id if current else None
                    replacement = await self.assignments.replace_translator(
                        tx, job, current, now,
                        translator_id=update.translator_id,
                        translator_email=update.translator_email,
                    )
                    if replacement.changed:
                        change_log.append({
                            "old_translator": replacement.old_translator_id,
                            "new_translator": replacement.new_translator_id,
                        })

                    old_due = None
                    if update.due is not None and update.due != job.due:
                        old_due = job.due
                        change_log.append({"old_due": job.due.isoformat(), "new_due": update.due.isoformat()})
                        job.due = update.due

                    old_language_id = None
                    if update.from_language_id is not None and update.from_language_id != job.from_language_id:
                        old_language_id = job.from_language_id
                        change_log.append({"old_lang": old_language_id, "new_lang": update.from_language_id})
                        job.from_language_id = update.from_language_id

                    outcome = None
                    if update.status is not None:
                        outcome = self.state_machine.decide(job, TransitionRequest(
                            target=update.status,
                            admin_comments=update.admin_comments,
                            session_time=update.session_time,
                            translator_changed=replacement.changed,
                        ), now)
                        if outcome.applied:
                            outcome.apply_to(job)
                            change_log.append({
                                "old_status": outcome.old_status.value,
                                "new_status": outcome.new_status.value,
                            })

                    if outcome is None or not outcome.refused:
                        if update.admin_comments != job.admin_comments:
                            job.admin_comments = update.admin_comments
                            change_log.append({"admin_comments": update.admin_comments})
                        if update.reference is not None and update.reference != job.reference:
                            job.reference = update.reference
                            change_log.append({"reference": update.reference})

                    if change_log:
                        job.updated_at = now
                        job = await tx.save_job(job)
            except BookingError as exc:
                return self._fail("update_job", exc, job_id=job_id, user_id=acting_user_id)

        log.info(f"USER #{actor.id} ({actor.name}) updated booking #{job_id}: {change_log}")

        effects: list[SideEffect] = list(outcome.side_effects) if outcome and outcome.applied else []
        effects += field_change_effects(
            job,
            old_due=old_due,
            old_language_id=old_language_id,
            translator_changed=replacement.changed and replacement.old_translator_id is not None,
            now=now,
        )
        if effects:
            ctx = await self._context(
                job,
                translator_id=replacement.new_translator_id,
                previous_translator_id=previous_translator_id if replacement.changed else None,
                new_translator_id=replacement.new_translator_id if replacement.changed else None,
            )
            await self.notifier.submit(effects, ctx)

        if not change_log and outcome is not None and outcome.refused:
            return BookingResult.unchanged(
                f"Status change refused: {outcome.reason}", code=TRANSITION_REFUSED,
            )
        if not change_log:
            return BookingResult.unchanged("No changes")
        if outcome is not None and outcome.refused:
            return BookingResult.success(
                f"Updated; status change refused: {outcome.reason}",
                data={"changes": change_log, "status_refused": True},
                side_effects=effects,
            )
        return BookingResult.success("Updated", data={"changes": change_log}, side_effects=effects)

    # ------------------------------------------------------------------
    # Cancellation, session end
    # ------------------------------------------------------------------

    async def cancel_job(self, job_id: int, acting_user_id: int) -> BookingResult:
        with AppMetrics.track_use_case("cancel_job"):
            try:
                actor = await self._require_user(acting_user_id)
                async with self.store.transaction(job_id) as tx:
                    outcome = await self.cancellation.cancel(tx, job_id, actor, self.clock.now())
            except BookingError as exc:
                return self._fail("cancel_job", exc, job_id=job_id, user_id=acting_user_id)

        AppMetrics.transition_applied(outcome.old_status.value, outcome.job.status.value)
        ctx = await self._context(outcome.job, translator_id=outcome.translator_id)
        await self.notifier.submit(outcome.side_effects, ctx)
        return BookingResult.success(
            data={"job_status": outcome.job.status.value},
            side_effects=outcome.side_effects,
        )

    async def end_job(self, job_id: int, acting_user_id: int) -> BookingResult:
        with AppMetrics.track_use_case("end_job"):
            try:
                async with self.store.transaction(job_id) as tx:
                    job = await self._require_job(tx, job_id)
                    if job.status is not JobStatus.STARTED:
                        return BookingResult.success(f"Booking #{job_id} is not in progress")

                    now = self.clock.now()
                    session = format_session_time(now - job.due)
                    job.status = JobStatus.COMPLETED
                    job.end_at = now
                    job.session_time = session
                    job.updated_at = now
                    job = await tx.save_job(job)

                    current = await tx.get_active_assignment(job_id)
                    if current is not None and current.is_open:
                        await self.assignments.complete(tx, current, acting_user_id, now)
            except BookingError as exc:
                return self._fail("end_job", exc, job_id=job_id, user_id=acting_user_id)

        AppMetrics.transition_applied(JobStatus.STARTED.value, JobStatus.COMPLETED.value)
        label = _session_summary(session)
        effects = [SideEffect(EffectKind.SESSION_ENDED, Audience.CUSTOMER,
                              {"session_time": label, "for_text": "invoice"})]
        if current is not None:
            effects.append(SideEffect(EffectKind.SESSION_ENDED, Audience.TRANSLATOR,
                                      {"session_time": label, "for_text": "payroll"}))
        ctx = await self._context(job, translator_id=current.translator_id if current else None)
        await self.notifier.submit(effects, ctx)
        return BookingResult.success(data={"session_time": session}, side_effects=effects)

    async def customer_not_call(self, job_id: int) -> BookingResult:
        with AppMetrics.track_use_case("customer_not_call"):
            try:
                async with self.store.transaction(job_id) as tx:
                    job = await self._require_job(tx, job_id)
                    now = self.clock.now()
                    old_status = job.status
                    job.status = JobStatus.NOT_CARRIED_OUT_CUSTOMER
                    job.end_at = now
                    job.updated_at = now
                    await tx.save_job(job)

                    current = await tx.get_active_assignment(job_id)
                    if current is not None and current.is_open:
                        await self.assignments.complete(tx, current, current.translator_id, now)
            except BookingError as exc:
                return self._fail("customer_not_call", exc, job_id=job_id)

        AppMetrics.transition_applied(old_status.value, job.status.value)
        return BookingResult.success()

    # ------------------------------------------------------------------
    # Reopen & expiry flags
    # ------------------------------------------------------------------

    async def reopen(self, job_id: int, acting_user_id: int) -> BookingResult:
        with AppMetrics.track_use_case("reopen"):
            try:
                async with self.store.transaction(job_id) as tx:
                    job = await self._require_job(tx, job_id)
                    now = self.clock.now()
                    expires = self.expire_at(job.due, now)
                    old_status = job.status

                    if job.status is not JobStatus.TIMEDOUT:
                        job.status = JobStatus.PENDING
                        job.created_at = now
                        job.updated_at = now
                        job.will_expire_at = expires
                        reopened = await tx.save_job(job)
                    else:
                        reopened = await tx.create_job(job.copy(
                            id=None,
                            status=JobStatus.PENDING,
                            created_at=now,
                            updated_at=now,
                            will_expire_at=expires,
                            cust_16_hour_email=False,
                            cust_48_hour_email=False,
                            email_sent=False,
                            email_sent_to_vendor=False,
                            end_at=None,
                            withdraw_at=None,
                            session_time=None,
                            admin_comments=texts.REOPEN_COMMENT.format(job_id=job_id),
                        ))

                    for active in await tx.list_active_assignments(job_id):
                        await self.assignments.cancel(tx, active, now)
                    await tx.create_assignment(TranslatorAssignment(
                        id=None, job_id=job_id, translator_id=acting_user_id, created_at=now, cancel_at=now,
                    ))
            except BookingError as exc:
                return self._fail("reopen", exc, job_id=job_id, user_id=acting_user_id)

        AppMetrics.transition_applied(old_status.value, JobStatus.PENDING.value)
        self.logger.info(
            f"Booking reopened as #{reopened.id}",
            extra={"job_id": job_id, "user_id": acting_user_id},
        )
        effects = [SideEffect(EffectKind.NOTIFY_TRANSLATORS, Audience.TRANSLATORS)]
        await self.notifier.submit(effects, NotificationContext(reopened))
        return BookingResult.success(
            "Translator cancelled, booking reopened",
            data={"job_id": reopened.id, "will_expire_at": expires.isoformat()},
            side_effects=effects,
        )

    async def ignore_expiring(self, job_id: int) -> BookingResult:
        return await self._set_flag(job_id, "ignore")

    async def ignore_expired(self, job_id: int) -> BookingResult:
        return await self._set_flag(job_id, "ignore_expired")

    async def _set_flag(self, job_id: int, name: str) -> BookingResult:
        try:
            async with self.store.transaction(job_id) as tx:
                job = await self._require_job(tx, job_id)
                setattr(job, name, True)
                job.updated_at = self.clock.now()
                await tx.save_job(job)
        except BookingError as exc:
            return self._fail(f"set_{name}", exc, job_id=job_id)
        return BookingResult.success("Changes saved")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def potential_jobs(self, translator_id: int) -> BookingResult:
        try:
            translator = await self._require_user(translator_id)
        except BookingError as exc:
            return self._fail("potential_jobs", exc, translator_id=translator_id)
        jobs = await self.matcher.potential_jobs(translator)
        return BookingResult.success(data={"jobs": [job_to_data(j) for j in jobs]})

    async def users_jobs(self, user_id: int) -> BookingResult:
        user = await self.store.get_user(user_id)
        if user is None:
            return BookingResult.success(data={"emergency": [], "normal": [], "user_type": ""})

        user_type = self._user_type(user)
        if user_type == "customer":
            jobs = await self.store.list_customer_jobs(user.id, OPEN_STATUSES)
        elif user_type == "translator":
            jobs = await self.store.list_translator_jobs(user.id, completed=False)
        else:
            jobs = []

        emergency = [job_to_data(j) for j in jobs if j.immediate]
        normal = [job_to_data(j) for j in sorted((j for j in jobs if not j.immediate), key=lambda j: j.due)]
        return BookingResult.success(data={"emergency": emergency, "normal": normal, "user_type": user_type})

    async def users_jobs_history(self, user_id: int, page: int = 1) -> BookingResult:
        page = max(page, 1)
        user = await self.store.get_user(user_id)
        user_type = self._user_type(user) if user else ""

        if user_type == "customer":
            jobs = await self.store.list_customer_jobs(user.id, HISTORY_STATUSES)
        elif user_type == "translator":
            jobs = await self.store.list_translator_jobs(user.id, completed=True)
        else:
            jobs = []

        jobs = sorted(jobs, key=lambda j: j.due, reverse=True)
        start = (page - 1) * HISTORY_PAGE_SIZE
        return BookingResult.success(data={
            "jobs": [job_to_data(j) for j in jobs[start:start + HISTORY_PAGE_SIZE]],
            "user_type": user_type,
            "num_pages": math.ceil(len(jobs) / HISTORY_PAGE_SIZE),
            "page": page,
        })

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _user_type(self, user: User) -> str:
        if user.user_type == self.customer_role_id:
            return "customer"
        if user.user_type == self.translator_role_id:
            return "translator"
        return ""

    async def _require_user(self, user_id: int) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    @staticmethod
    async def _require_job(tx, job_id: int) -> Job:
        job = await tx.get_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        return job

    async def _context(
        self,
        job: Job,
        *,
        translator_id: Optional[int] = None,
        previous_translator_id: Optional[int] = None,
        new_translator_id: Optional[int] = None,
    ) -> NotificationContext:
        load = partial(_load_optional, self.store)
        if translator_id is None:
            active = await self.store.get_active_assignment(job.id)
            translator_id = active.translator_id if active else None
        return NotificationContext(
            job,
            customer=await self.store.get_user(job.user_id),
            translator=await load(translator_id),
            previous_translator=await load(previous_translator_id),
            new_translator=await load(new_translator_id),
        )

    def _fail(self, use_case: str, exc: BookingError, **context: Any) -> BookingResult:
        self.logger.info(f"{use_case} failed: {exc.code}: {exc.detail}", extra=context)
        return BookingResult.fail(exc)


async def _load_optional(store: BookingStore, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return await store.get_user(user_id)


def _session_summary(session: str) -> str:
    hours, minutes, _ = session.split(":")
    return f"{hours} h {minutes} min"


def build_orchestrator(
    settings,
    *,
    store: BookingStore,
    towns,
    mailer,
    sms,
    push,
    clock: Clock,
    logger: logging.Logger | None = None,
) -> BookingOrchestrator:
    """Wire the core components from a ``Settings`` instance."""
    business_hours = BusinessHours(
        timezone=settings.business_timezone,
        night_start_hour=settings.night_start_hour,
        night_end_hour=settings.night_end_hour,
    )
    expire_at = partial(
        will_expire_at,
        near_threshold_hours=settings.expiry_near_threshold_hours,
        far_lead_hours=settings.expiry_far_lead_hours,
        min_minutes=settings.expiry_min_minutes,
    )
    matcher = EligibilityMatcher(store, towns)
    assignments = AssignmentManager()
    notifier = NotificationDispatcher(
        matcher, store, mailer, sms, push, clock,
        business_hours=business_hours,
        sms_from_number=settings.sms_from_number or "",
        timeout=settings.channel_timeout_seconds,
        in_background=settings.notifications_in_background,
    )
    cancellation = CancellationPolicy(
        assignments,
        customer_role_id=settings.customer_role_id,
        translator_role_id=settings.translator_role_id,
        expire_at=expire_at,
        window_hours=settings.cancellation_window_hours,
        support_phone=settings.support_phone_number,
    )
    return BookingOrchestrator(
        store=store,
        matcher=matcher,
        assignments=assignments,
        state_machine=JobStateMachine(),
        cancellation=cancellation,
        notifier=notifier,
        clock=clock,
        customer_role_id=settings.customer_role_id,
        translator_role_id=settings.translator_role_id,
        immediate_lead_minutes=settings.immediate_lead_minutes,
        business_hours=business_hours,
        expire_at=expire_at,
        logger=logger,
    )
