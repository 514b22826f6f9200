# tests/test_domain.py
"""Tests for domain models"""
import pytest

from bookings.core.domain import (
    Certification,
    Gender,
    JobStatus,
    JobType,
    TranslatorAssignment,
    TranslatorType,
    certification_from_job_for,
    gender_from_job_for,
    job_for_labels,
    job_to_data,
    job_type_for_consumer,
    job_type_for_translator,
    parse_enum,
)
from bookings.core.errors import ValidationFailed

from conftest import NOW, make_job


class TestParseEnum:
    def test_parses_value(self):
        assert parse_enum(JobStatus, "withdrawbefore24", "status") is JobStatus.WITHDRAW_BEFORE_24

    def test_passes_member_through(self):
        assert parse_enum(Gender, Gender.MALE, "gender") is Gender.MALE

    def test_unknown_value_names_field(self):
        with pytest.raises(ValidationFailed) as exc_info:
            parse_enum(JobStatus, "archived", "status")
        assert exc_info.value.field_name == "status"
        assert "archived" in exc_info.value.detail


class TestJobStatus:
    def test_open_statuses(self):
        assert JobStatus.PENDING.is_open
        assert JobStatus.STARTED.is_open
        assert not JobStatus.COMPLETED.is_open
        assert not JobStatus.TIMEDOUT.is_open


class TestJobForMapping:
    def test_gender(self):
        assert gender_from_job_for(["male", "certified"]) is Gender.MALE
        assert gender_from_job_for(["female"]) is Gender.FEMALE
        assert gender_from_job_for(["normal"]) is Gender.NONE

    @pytest.mark.parametrize("job_for,expected", [
        (["normal", "certified"], Certification.BOTH),
        (["normal", "certified_in_law"], Certification.N_LAW),
        (["normal", "certified_in_health"], Certification.N_HEALTH),
        (["certified"], Certification.YES),
        (["certified_in_law"], Certification.LAW),
        (["certified_in_health"], Certification.HEALTH),
        (["normal"], Certification.NORMAL),
        ([], Certification.NORMAL),
    ])
    def test_certification(self, job_for, expected):
        assert certification_from_job_for(job_for) is expected


class TestJobTypeMapping:
    @pytest.mark.parametrize("consumer_type,expected", [
        ("rwsconsumer", JobType.RWS),
        ("ngo", JobType.UNPAID),
        ("paid", JobType.PAID),
        ("", JobType.UNKNOWN),
        (None, JobType.UNKNOWN),
    ])
    def test_for_consumer(self, consumer_type, expected):
        assert job_type_for_consumer(consumer_type) is expected

    def test_for_translator(self):
        assert job_type_for_translator(TranslatorType.PROFESSIONAL) is JobType.PAID
        assert job_type_for_translator(TranslatorType.RWS_TRANSLATOR) is JobType.RWS
        assert job_type_for_translator(TranslatorType.VOLUNTEER) is JobType.UNPAID
        assert job_type_for_translator(None) is JobType.UNPAID


class TestJob:
    def test_physical_only(self):
        assert make_job(customer_phone_type=False, customer_physical_type=True).is_physical_only
        assert not make_job(customer_phone_type=True, customer_physical_type=True).is_physical_only

    def test_copy_does_not_touch_original(self):
        job = make_job(id=4)
        copy = job.copy(id=5, status=JobStatus.ASSIGNED)
        assert job.id == 4 and job.status is JobStatus.PENDING
        assert copy.id == 5 and copy.due == job.due


class TestTranslatorAssignment:
    def test_active_and_open(self):
        assignment = TranslatorAssignment(id=1, job_id=1, translator_id=10)
        assert assignment.is_active and assignment.is_open

        completed = assignment.copy(completed_at=NOW, completed_by=10)
        assert completed.is_active and not completed.is_open

        cancelled = assignment.copy(cancel_at=NOW)
        assert not cancelled.is_active and not cancelled.is_open


class TestJobToData:
    def test_labels(self):
        job = make_job(gender=Gender.FEMALE, certification=Certification.BOTH)
        assert job_for_labels(job) == ["female", "normal", "certified"]

    def test_snapshot(self):
        job = make_job(id=7, due=NOW, town="Uppsala", immediate=True)
        data = job_to_data(job, customer_type="business")

        assert data["job_id"] == 7
        assert data["immediate"] == "yes"
        assert data["due"] == "2025-03-10 10:00:00"
        assert data["due_date"] == "2025-03-10"
        assert data["customer_phone_type"] == "yes"
        assert data["customer_physical_type"] == "no"
        assert data["customer_town"] == "Uppsala"
        assert data["customer_type"] == "business"
        assert data["status"] == "pending"
