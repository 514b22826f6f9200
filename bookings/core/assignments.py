# bookings/core/assignments.py
"""
Translator-to-job relation lifecycle.

Every method runs inside a ``BookingTransaction`` opened by the caller and
re-reads what it decides on from that transaction, never from a cached job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bookings.core.domain import Job, JobStatus, TranslatorAssignment
from bookings.core.errors import AlreadyAssigned, AlreadyBooked, NotFound, ValidationFailed
from bookings.core.ports import BookingTransaction
from bookings.infra.logging_config import get_logger
from bookings.infra.metrics import AppMetrics


@dataclass
class TranslatorReplacement:
    changed: bool
    old_translator_id: Optional[int] = None
    new_translator_id: Optional[int] = None
    assignment: Optional[TranslatorAssignment] = None


class AssignmentManager:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger(__name__)

    async def assign(
        self, tx: BookingTransaction, job_id: int, translator_id: int, now: datetime,
    ) -> tuple[Job, TranslatorAssignment]:
        """
        Bind a translator to a pending job and flip it to ``assigned``.

        Raises:
            NotFound: job does not exist
            AlreadyAssigned: job is no longer pending or already has an active assignment
            AlreadyBooked: translator holds an assignment overlapping the job's due time
        """
        job = await tx.get_job(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")

        if job.status is not JobStatus.PENDING or await tx.get_active_assignment(job_id) is not None:
            AppMetrics.assignment_conflict("already_assigned")
            raise AlreadyAssigned(f"Job {job_id} is already assigned")

        if await tx.translator_has_conflict(translator_id, job.due, job.duration, exclude_job_id=job_id):
            AppMetrics.assignment_conflict("already_booked")
            raise AlreadyBooked(f"Translator {translator_id} is already booked at this time")

        assignment = await tx.create_assignment(
            TranslatorAssignment(id=None, job_id=job_id, translator_id=translator_id, created_at=now)
        )
        job.status = JobStatus.ASSIGNED
        job.updated_at = now
        job = await tx.save_job(job)

        AppMetrics.assignment_created()
        self.logger.info(
            "Translator assigned",
            extra={"job_id": job_id, "translator_id": translator_id},
        )
        return job, assignment

    async def replace_translator(
        self,
        tx: BookingTransaction,
        job: Job,
        current: Optional[TranslatorAssignment],
        now: datetime,
        *,
        translator_id: Optional[int] = None,
        translator_email: Optional[str] = None,
    ) -> TranslatorReplacement:
        """Move the job to another translator (admin reassignment)."""
        old_id = current.translator_id if current is not None else None

        if translator_id is None and translator_email:
            user = await tx.get_user_by_email(translator_email)
            if user is None:
                raise ValidationFailed(
                    f"No translator with email {translator_email}", field_name="new_translator_email",
                )
            translator_id = user.id

        if translator_id is None or translator_id == old_id:
            return TranslatorReplacement(changed=False, old_translator_id=old_id, new_translator_id=old_id)

        if current is not None:
            fresh = current.copy(
                id=None,
                translator_id=translator_id,
                created_at=now,
                cancel_at=None,
                completed_at=None,
                completed_by=None,
            )
            await tx.cancel_assignment(current.id, now)
        else:
            fresh = TranslatorAssignment(id=None, job_id=job.id, translator_id=translator_id, created_at=now)

        assignment = await tx.create_assignment(fresh)
        AppMetrics.assignment_created()
        self.logger.info(
            f"Translator replaced: {old_id} -> {translator_id}",
            extra={"job_id": job.id, "translator_id": translator_id},
        )
        return TranslatorReplacement(
            changed=True, old_translator_id=old_id, new_translator_id=translator_id, assignment=assignment,
        )

    async def complete(
        self, tx: BookingTransaction, assignment: TranslatorAssignment, completed_by: int, at: datetime,
    ) -> None:
        if not assignment.is_open:
            raise ValidationFailed(f"Assignment {assignment.id} is not open")
        await tx.complete_assignment(assignment.id, completed_by, at)
        assignment.completed_at = at
        assignment.completed_by = completed_by

    async def cancel(self, tx: BookingTransaction, assignment: TranslatorAssignment, at: datetime) -> None:
        await tx.cancel_assignment(assignment.id, at)
        assignment.cancel_at = at
        self.logger.debug(
            "Assignment cancelled",
            extra={"job_id": assignment.job_id, "translator_id": assignment.translator_id},
        )
