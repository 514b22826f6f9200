# bookings/core/state_machine.py
"""
Job status transitions.

``JobStateMachine.decide`` is pure: given the current job and a transition
request it returns a ``TransitionOutcome`` describing the field changes to
persist and the side effects to run after the store write commits.  It never
touches the store or a channel.

Handlers are keyed by the *current* status.  A handler that finds its
preconditions unmet returns a refused outcome rather than raising, so callers
can tell "nothing requested" (unchanged) apart from "request not allowed"
(refused).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from bookings.core.domain import Job, JobStatus
from bookings.core.timing import parse_session_time, session_label
from bookings.infra.logging_config import get_logger
from bookings.infra.metrics import AppMetrics


class EffectKind(str, Enum):
    # Email
    JOB_CREATED = "job_created"
    REOPENED = "job_reopened"
    ACCEPTED_CONFIRMATION = "job_accepted"
    TRANSLATOR_ASSIGNED = "translator_assigned"
    BOOKING_CANCELLED = "booking_cancelled"
    TRANSLATOR_CANCELLED = "translator_cancelled"
    SESSION_ENDED = "session_ended"

    # Push
    SESSION_REMINDER = "session_start_remind"
    NOTIFY_TRANSLATORS = "notify_translators"
    CUSTOMER_CANCELLED_PUSH = "job_cancelled"
    TRANSLATOR_WITHDREW_PUSH = "job_translator_withdrew"
    JOB_ACCEPTED_PUSH = "job_accepted_push"

    # Field changes on update
    TRANSLATOR_CHANGED = "translator_changed"
    DATE_CHANGED = "date_changed"
    LANGUAGE_CHANGED = "language_changed"


class Audience(str, Enum):
    CUSTOMER = "customer"
    TRANSLATOR = "translator"  # the active translator
    TRANSLATORS = "translators"  # every eligible translator
    PREVIOUS_TRANSLATOR = "previous_translator"
    NEW_TRANSLATOR = "new_translator"


@dataclass
class SideEffect:
    kind: EffectKind
    audience: Audience
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.audience.value}"


class OutcomeKind(str, Enum):
    UNCHANGED = "unchanged"
    REFUSED = "refused"
    APPLIED = "applied"


@dataclass
class TransitionRequest:
    target: JobStatus
    admin_comments: str = ""
    session_time: Optional[str] = None
    translator_changed: bool = False


@dataclass
class TransitionOutcome:
    kind: OutcomeKind
    old_status: JobStatus
    new_status: JobStatus
    changes: dict[str, Any] = field(default_factory=dict)
    side_effects: list[SideEffect] = field(default_factory=list)
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.kind is OutcomeKind.APPLIED

    @property
    def refused(self) -> bool:
        return self.kind is OutcomeKind.REFUSED

    def apply_to(self, job: Job) -> Job:
        """Write ``changes`` onto the job (no-op unless applied)."""
        if self.applied:
            for name, value in self.changes.items():
                setattr(job, name, value)
        return job


_Handler = Callable[[Job, TransitionRequest, datetime], TransitionOutcome]

WITHDRAW_STATUSES = frozenset({JobStatus.WITHDRAW_BEFORE_24, JobStatus.WITHDRAW_AFTER_24})


class JobStateMachine:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger(__name__)
        self._handlers: dict[JobStatus, _Handler] = {
            JobStatus.TIMEDOUT: self._from_timedout,
            JobStatus.COMPLETED: self._from_completed,
            JobStatus.STARTED: self._from_started,
            JobStatus.PENDING: self._from_pending,
            JobStatus.WITHDRAW_AFTER_24: self._from_withdraw_after_24,
            JobStatus.ASSIGNED: self._from_assigned,
            JobStatus.WITHDRAW_BEFORE_24: self._from_final,
            JobStatus.NOT_CARRIED_OUT_CUSTOMER: self._from_final,
        }
        missing = set(JobStatus) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No transition handler for: {sorted(s.value for s in missing)}")

    def decide(self, job: Job, request: TransitionRequest, now: datetime) -> TransitionOutcome:
        if request.target is job.status:
            return TransitionOutcome(OutcomeKind.UNCHANGED, job.status, job.status)

        outcome = self._handlers[job.status](job, request, now)

        if outcome.applied:
            AppMetrics.transition_applied(job.status.value, request.target.value)
            self.logger.info(
                f"Transition {job.status.value} -> {request.target.value}",
                extra={"job_id": job.id},
            )
        else:
            AppMetrics.transition_refused(job.status.value, request.target.value)
            self.logger.info(
                f"Transition {job.status.value} -> {request.target.value} refused: {outcome.reason}",
                extra={"job_id": job.id},
            )
        return outcome

    # ------------------------------------------------------------------
    # Handlers (keyed by current status)
    # ------------------------------------------------------------------

    def _from_timedout(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if req.target is JobStatus.PENDING:
            return _applied(
                job, req,
                changes={
                    "created_at": now,
                    "email_sent": False,
                    "email_sent_to_vendor": False,
                },
                effects=[
                    SideEffect(EffectKind.REOPENED, Audience.CUSTOMER),
                    SideEffect(EffectKind.NOTIFY_TRANSLATORS, Audience.TRANSLATORS),
                ],
            )
        if req.translator_changed:
            return _applied(job, req, effects=[
                SideEffect(EffectKind.ACCEPTED_CONFIRMATION, Audience.CUSTOMER),
            ])
        return _refused(job, req, "timedout job can only be reopened or reassigned")

    def _from_completed(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if req.target is JobStatus.TIMEDOUT:
            if not _has_comment(req):
                return _refused(job, req, "admin comment required")
            return _applied(job, req, changes={"admin_comments": req.admin_comments})
        return _applied(job, req)

    def _from_started(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if not _has_comment(req):
            return _refused(job, req, "admin comment required")
        changes: dict[str, Any] = {"admin_comments": req.admin_comments}
        effects: list[SideEffect] = []

        if req.target is JobStatus.COMPLETED:
            if not req.session_time or not req.session_time.strip():
                return _refused(job, req, "session time required")
            label = session_label(parse_session_time(req.session_time))
            changes.update(end_at=now, session_time=req.session_time.strip())
            effects = [
                SideEffect(EffectKind.SESSION_ENDED, Audience.CUSTOMER,
                           {"session_time": label, "for_text": "invoice"}),
                SideEffect(EffectKind.SESSION_ENDED, Audience.TRANSLATOR,
                           {"session_time": label, "for_text": "payroll"}),
            ]
        return _applied(job, req, changes=changes, effects=effects)

    def _from_pending(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if req.target is JobStatus.TIMEDOUT and not _has_comment(req):
            return _refused(job, req, "admin comment required")
        changes = {"admin_comments": req.admin_comments}

        if req.target is JobStatus.ASSIGNED and req.translator_changed:
            return _applied(job, req, changes=changes, effects=[
                SideEffect(EffectKind.ACCEPTED_CONFIRMATION, Audience.CUSTOMER),
                SideEffect(EffectKind.TRANSLATOR_ASSIGNED, Audience.TRANSLATOR),
                SideEffect(EffectKind.SESSION_REMINDER, Audience.CUSTOMER),
                SideEffect(EffectKind.SESSION_REMINDER, Audience.TRANSLATOR),
            ])
        return _applied(job, req, changes=changes, effects=[
            SideEffect(EffectKind.BOOKING_CANCELLED, Audience.CUSTOMER),
        ])

    def _from_withdraw_after_24(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if req.target is JobStatus.TIMEDOUT and _has_comment(req):
            return _applied(job, req, changes={"admin_comments": req.admin_comments})
        return _refused(job, req, "only timedout with an admin comment is allowed")

    def _from_assigned(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        if req.target not in WITHDRAW_STATUSES and req.target is not JobStatus.TIMEDOUT:
            return _refused(job, req, "assigned job can only be withdrawn or timed out")
        if req.target is JobStatus.TIMEDOUT and not _has_comment(req):
            return _refused(job, req, "admin comment required")

        effects: list[SideEffect] = []
        if req.target in WITHDRAW_STATUSES:
            effects = [
                SideEffect(EffectKind.BOOKING_CANCELLED, Audience.CUSTOMER),
                SideEffect(EffectKind.TRANSLATOR_CANCELLED, Audience.TRANSLATOR),
            ]
        return _applied(job, req, changes={"admin_comments": req.admin_comments}, effects=effects)

    def _from_final(self, job: Job, req: TransitionRequest, now: datetime) -> TransitionOutcome:
        return _refused(job, req, f"{job.status.value} is final")


def _has_comment(req: TransitionRequest) -> bool:
    return bool(req.admin_comments and req.admin_comments.strip())


def _applied(
    job: Job,
    req: TransitionRequest,
    *,
    changes: dict[str, Any] | None = None,
    effects: list[SideEffect] | None = None,
) -> TransitionOutcome:
    return TransitionOutcome(
        OutcomeKind.APPLIED,
        job.status,
        req.target,
        changes={"status": req.target, **(changes or {})},
        side_effects=effects or [],
    )


def _refused(job: Job, req: TransitionRequest, reason: str) -> TransitionOutcome:
    return TransitionOutcome(OutcomeKind.REFUSED, job.status, req.target, reason=reason)


def field_change_effects(
    job: Job,
    *,
    old_due: Optional[datetime],
    old_language_id: Optional[int],
    translator_changed: bool,
    now: datetime,
) -> list[SideEffect]:
    """
    Notifications for date/language/translator edits made during an update.

    ``job`` is the job after the update; ``old_due`` / ``old_language_id`` are
    set only when that field changed.  Jobs whose due time has passed get
    no notifications.
    """
    if job.due <= now:
        return []
    effects: list[SideEffect] = []
    if old_due is not None:
        data = {"old_due": old_due}
        effects += [
            SideEffect(EffectKind.DATE_CHANGED, Audience.CUSTOMER, data),
            SideEffect(EffectKind.DATE_CHANGED, Audience.TRANSLATOR, data),
        ]
    if translator_changed:
        effects += [
            SideEffect(EffectKind.TRANSLATOR_CHANGED, Audience.CUSTOMER),
            SideEffect(EffectKind.TRANSLATOR_CHANGED, Audience.PREVIOUS_TRANSLATOR),
            SideEffect(EffectKind.TRANSLATOR_CHANGED, Audience.NEW_TRANSLATOR),
        ]
    if old_language_id is not None:
        data = {"old_language_id": old_language_id}
        effects += [
            SideEffect(EffectKind.LANGUAGE_CHANGED, Audience.CUSTOMER, data),
            SideEffect(EffectKind.LANGUAGE_CHANGED, Audience.TRANSLATOR, data),
        ]
    return effects
