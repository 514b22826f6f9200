# bookings/core/cancellation.py
"""
Cancellation window rules.

Customers may always withdraw an open booking; the status records whether it
happened inside or outside the window.  Translators may only hand a booking
back while the window is still open, in which case it returns to the pool.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from bookings.core import texts
from bookings.core.assignments import AssignmentManager
from bookings.core.domain import Job, JobStatus, User
from bookings.core.errors import CancellationRefused, NotFound, PermissionDenied, ValidationFailed
from bookings.core.ports import BookingTransaction
from bookings.core.state_machine import Audience, EffectKind, SideEffect
from bookings.core.timing import within_cancellation_window
from bookings.infra.logging_config import get_logger

CUSTOMER_CANCELLABLE = frozenset({JobStatus.PENDING, JobStatus.ASSIGNED})


@dataclass
class CancellationOutcome:
    job: Job
    old_status: JobStatus
    translator_id: Optional[int] = None  # translator whose assignment was cancelled
    side_effects: list[SideEffect] = field(default_factory=list)


class CancellationPolicy:
    def __init__(
        self,
        assignments: AssignmentManager,
        *,
        customer_role_id: int,
        translator_role_id: int,
        expire_at: Callable[[datetime, datetime], datetime],
        window_hours: int = 24,
        support_phone: str = "",
        logger: logging.Logger | None = None,
    ):
        self.assignments = assignments
        self.customer_role_id = customer_role_id
        self.translator_role_id = translator_role_id
        self.expire_at = expire_at
        self.window_hours = window_hours
        self.support_phone = support_phone
        self.logger = logger or get_logger(__name__)

    async def cancel(
        self, tx: BookingTransaction, job_id: int, actor: User, now: datetime,
    ) -> CancellationOutcome:
        job = await tx.get_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")

        if actor.user_type == self.customer_role_id:
            return await self._customer_cancel(tx, job, now)
        return await self._translator_cancel(tx, job, actor, now)

    async def _customer_cancel(self, tx: BookingTransaction, job: Job, now: datetime) -> CancellationOutcome:
        if job.status not in CUSTOMER_CANCELLABLE:
            raise ValidationFailed(f"Booking #{job.id} can no longer be cancelled", field_name="status")

        old_status = job.status
        in_window = within_cancellation_window(job.due, now, self.window_hours)
        job.status = JobStatus.WITHDRAW_BEFORE_24 if in_window else JobStatus.WITHDRAW_AFTER_24
        job.withdraw_at = now
        job.updated_at = now

        effects: list[SideEffect] = []
        translator_id = None
        current = await tx.get_active_assignment(job.id)
        if current is not None:
            translator_id = current.translator_id
            await self.assignments.cancel(tx, current, now)
            effects.append(SideEffect(EffectKind.CUSTOMER_CANCELLED_PUSH, Audience.TRANSLATOR))

        job = await tx.save_job(job)
        self.logger.info(
            f"Customer cancelled booking ({job.status.value})",
            extra={"job_id": job.id, "user_id": job.user_id},
        )
        return CancellationOutcome(job, old_status, translator_id, effects)

    async def _translator_cancel(
        self, tx: BookingTransaction, job: Job, actor: User, now: datetime,
    ) -> CancellationOutcome:
        current = await tx.get_active_assignment(job.id)
        if current is None:
            raise NotFound(f"Booking #{job.id} has no assigned translator")
        if actor.user_type == self.translator_role_id and actor.id != current.translator_id:
            raise PermissionDenied("Only the assigned translator can cancel this booking")

        if not within_cancellation_window(job.due, now, self.window_hours):
            raise CancellationRefused(texts.CANCEL_REFUSED.format(phone=self.support_phone))

        old_status = job.status
        job.status = JobStatus.PENDING
        job.created_at = now
        job.updated_at = now
        job.will_expire_at = self.expire_at(job.due, now)
        await self.assignments.cancel(tx, current, now)
        job = await tx.save_job(job)

        self.logger.info(
            "Translator withdrew, booking reopened",
            extra={"job_id": job.id, "translator_id": current.translator_id},
        )
        effects = [
            SideEffect(EffectKind.TRANSLATOR_WITHDREW_PUSH, Audience.CUSTOMER),
            SideEffect(
                EffectKind.NOTIFY_TRANSLATORS,
                Audience.TRANSLATORS,
                {"exclude_translator_id": current.translator_id},
            ),
        ]
        return CancellationOutcome(job, old_status, current.translator_id, effects)
