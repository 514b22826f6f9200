# tests/test_state_machine.py
"""Tests for job status transitions in bookings/core/state_machine.py"""
from datetime import timedelta

import pytest

from bookings.core.domain import JobStatus
from bookings.core.state_machine import (
    Audience,
    EffectKind,
    JobStateMachine,
    OutcomeKind,
    TransitionRequest,
    field_change_effects,
)
from bookings.infra.metrics import get_metrics_collector

from conftest import NOW, make_job


def effect_pairs(outcome):
    return [(e.kind, e.audience) for e in outcome.side_effects]


class TestDecide:
    def setup_method(self):
        self.machine = JobStateMachine()

    def decide(self, status, target, **request):
        job = make_job(id=1, status=status)
        return self.machine.decide(job, TransitionRequest(target=target, **request), NOW)

    def test_same_status_is_unchanged(self):
        outcome = self.decide(JobStatus.ASSIGNED, JobStatus.ASSIGNED)
        assert outcome.kind is OutcomeKind.UNCHANGED
        assert outcome.side_effects == []

    # timedout

    def test_timedout_to_pending_reopens(self):
        outcome = self.decide(JobStatus.TIMEDOUT, JobStatus.PENDING)

        assert outcome.applied
        assert outcome.changes["status"] is JobStatus.PENDING
        assert outcome.changes["created_at"] == NOW
        assert outcome.changes["email_sent"] is False
        assert effect_pairs(outcome) == [
            (EffectKind.REOPENED, Audience.CUSTOMER),
            (EffectKind.NOTIFY_TRANSLATORS, Audience.TRANSLATORS),
        ]

    def test_timedout_reassigned_with_new_translator(self):
        outcome = self.decide(JobStatus.TIMEDOUT, JobStatus.ASSIGNED, translator_changed=True)
        assert outcome.applied
        assert effect_pairs(outcome) == [(EffectKind.ACCEPTED_CONFIRMATION, Audience.CUSTOMER)]

    def test_timedout_without_translator_change_refused(self):
        outcome = self.decide(JobStatus.TIMEDOUT, JobStatus.COMPLETED)
        assert outcome.refused
        assert outcome.changes == {}

    # completed

    def test_completed_to_timedout_requires_comment(self):
        assert self.decide(JobStatus.COMPLETED, JobStatus.TIMEDOUT).refused
        outcome = self.decide(JobStatus.COMPLETED, JobStatus.TIMEDOUT, admin_comments="no-show")
        assert outcome.applied
        assert outcome.changes["admin_comments"] == "no-show"

    def test_completed_to_other_status(self):
        outcome = self.decide(JobStatus.COMPLETED, JobStatus.STARTED)
        assert outcome.applied
        assert outcome.side_effects == []

    # started

    def test_started_requires_comment(self):
        outcome = self.decide(JobStatus.STARTED, JobStatus.COMPLETED, session_time="1:00:00")
        assert outcome.refused
        assert outcome.reason == "admin comment required"

    def test_started_to_completed_requires_session_time(self):
        outcome = self.decide(JobStatus.STARTED, JobStatus.COMPLETED, admin_comments="done")
        assert outcome.refused
        assert outcome.reason == "session time required"

    def test_started_to_completed(self):
        outcome = self.decide(
            JobStatus.STARTED, JobStatus.COMPLETED, admin_comments="done", session_time="1:30:00",
        )

        assert outcome.applied
        assert outcome.changes["end_at"] == NOW
        assert outcome.changes["session_time"] == "1:30:00"
        assert effect_pairs(outcome) == [
            (EffectKind.SESSION_ENDED, Audience.CUSTOMER),
            (EffectKind.SESSION_ENDED, Audience.TRANSLATOR),
        ]
        assert outcome.side_effects[0].data == {"session_time": "1h 30min", "for_text": "invoice"}
        assert outcome.side_effects[1].data["for_text"] == "payroll"

    def test_started_to_timedout_with_comment(self):
        outcome = self.decide(JobStatus.STARTED, JobStatus.TIMEDOUT, admin_comments="late")
        assert outcome.applied
        assert outcome.side_effects == []

    # pending

    def test_pending_to_assigned_with_new_translator(self):
        outcome = self.decide(JobStatus.PENDING, JobStatus.ASSIGNED, translator_changed=True)

        assert outcome.applied
        assert effect_pairs(outcome) == [
            (EffectKind.ACCEPTED_CONFIRMATION, Audience.CUSTOMER),
            (EffectKind.TRANSLATOR_ASSIGNED, Audience.TRANSLATOR),
            (EffectKind.SESSION_REMINDER, Audience.CUSTOMER),
            (EffectKind.SESSION_REMINDER, Audience.TRANSLATOR),
        ]

    def test_pending_withdrawn_notifies_customer(self):
        outcome = self.decide(JobStatus.PENDING, JobStatus.WITHDRAW_BEFORE_24)
        assert outcome.applied
        assert effect_pairs(outcome) == [(EffectKind.BOOKING_CANCELLED, Audience.CUSTOMER)]

    def test_pending_to_timedout_requires_comment(self):
        assert self.decide(JobStatus.PENDING, JobStatus.TIMEDOUT).refused
        assert self.decide(JobStatus.PENDING, JobStatus.TIMEDOUT, admin_comments="x").applied

    # withdrawafter24

    def test_withdraw_after_24_only_to_timedout(self):
        assert self.decide(JobStatus.WITHDRAW_AFTER_24, JobStatus.PENDING).refused
        assert self.decide(JobStatus.WITHDRAW_AFTER_24, JobStatus.TIMEDOUT).refused
        assert self.decide(JobStatus.WITHDRAW_AFTER_24, JobStatus.TIMEDOUT, admin_comments="x").applied

    # assigned

    @pytest.mark.parametrize("target", [JobStatus.PENDING, JobStatus.STARTED, JobStatus.COMPLETED])
    def test_assigned_refuses_other_targets(self, target):
        assert self.decide(JobStatus.ASSIGNED, target, admin_comments="x").refused

    def test_assigned_withdrawn(self):
        outcome = self.decide(JobStatus.ASSIGNED, JobStatus.WITHDRAW_AFTER_24)
        assert outcome.applied
        assert effect_pairs(outcome) == [
            (EffectKind.BOOKING_CANCELLED, Audience.CUSTOMER),
            (EffectKind.TRANSLATOR_CANCELLED, Audience.TRANSLATOR),
        ]

    def test_assigned_to_timedout_requires_comment(self):
        assert self.decide(JobStatus.ASSIGNED, JobStatus.TIMEDOUT).refused
        outcome = self.decide(JobStatus.ASSIGNED, JobStatus.TIMEDOUT, admin_comments="x")
        assert outcome.applied
        assert outcome.side_effects == []

    # final

    @pytest.mark.parametrize("status", [JobStatus.WITHDRAW_BEFORE_24, JobStatus.NOT_CARRIED_OUT_CUSTOMER])
    def test_final_statuses(self, status):
        outcome = self.decide(status, JobStatus.PENDING, admin_comments="x")
        assert outcome.refused
        assert "final" in outcome.reason

    # bookkeeping

    def test_metrics(self):
        self.decide(JobStatus.PENDING, JobStatus.TIMEDOUT)
        self.decide(JobStatus.PENDING, JobStatus.TIMEDOUT, admin_comments="x")

        collector = get_metrics_collector()
        assert collector.get_counter("status_transitions_refused_total", old="pending", new="timedout") == 1
        assert collector.get_counter("status_transitions_total", old="pending", new="timedout") == 1

    def test_apply_to(self):
        job = make_job(id=1, status=JobStatus.STARTED)
        outcome = self.machine.decide(job, TransitionRequest(JobStatus.TIMEDOUT, admin_comments="late"), NOW)

        outcome.apply_to(job)

        assert job.status is JobStatus.TIMEDOUT
        assert job.admin_comments == "late"

    def test_apply_to_ignores_refused(self):
        job = make_job(id=1, status=JobStatus.STARTED)
        outcome = self.machine.decide(job, TransitionRequest(JobStatus.TIMEDOUT), NOW)

        outcome.apply_to(job)

        assert job.status is JobStatus.STARTED


class TestFieldChangeEffects:
    def test_past_job_gets_nothing(self):
        job = make_job(due=NOW - timedelta(minutes=1))
        effects = field_change_effects(
            job, old_due=NOW, old_language_id=6, translator_changed=True, now=NOW,
        )
        assert effects == []

    def test_all_changes(self):
        old_due = NOW + timedelta(days=1)
        effects = field_change_effects(
            make_job(), old_due=old_due, old_language_id=6, translator_changed=True, now=NOW,
        )

        assert [(e.kind, e.audience) for e in effects] == [
            (EffectKind.DATE_CHANGED, Audience.CUSTOMER),
            (EffectKind.DATE_CHANGED, Audience.TRANSLATOR),
            (EffectKind.TRANSLATOR_CHANGED, Audience.CUSTOMER),
            (EffectKind.TRANSLATOR_CHANGED, Audience.PREVIOUS_TRANSLATOR),
            (EffectKind.TRANSLATOR_CHANGED, Audience.NEW_TRANSLATOR),
            (EffectKind.LANGUAGE_CHANGED, Audience.CUSTOMER),
            (EffectKind.LANGUAGE_CHANGED, Audience.TRANSLATOR),
        ]
        assert effects[0].data == {"old_due": old_due}
        assert effects[-1].data == {"old_language_id": 6}

    def test_no_changes(self):
        effects = field_change_effects(
            make_job(), old_due=None, old_language_id=None, translator_changed=False, now=NOW,
        )
        assert effects == []
