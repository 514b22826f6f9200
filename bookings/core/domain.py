# bookings/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar

from bookings.core.errors import ValidationFailed

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: Any, field_name: str) -> E:
    """Parse a raw store/request value into a closed enum (boundary validation)."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationFailed(
            f"Invalid {field_name} '{value}' (expected one of: {allowed})",
            field_name=field_name,
        )


# ============================================================================
# ENUMERATIONS
# ============================================================================

class JobStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    STARTED = "started"
    COMPLETED = "completed"
    WITHDRAW_BEFORE_24 = "withdrawbefore24"
    WITHDRAW_AFTER_24 = "withdrawafter24"
    TIMEDOUT = "timedout"
    NOT_CARRIED_OUT_CUSTOMER = "not_carried_out_customer"

    @property
    def is_open(self) -> bool:
        """Statuses a customer still sees as upcoming."""
        return self in OPEN_STATUSES


OPEN_STATUSES = frozenset({JobStatus.PENDING, JobStatus.ASSIGNED, JobStatus.STARTED})
HISTORY_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.WITHDRAW_BEFORE_24,
    JobStatus.WITHDRAW_AFTER_24,
    JobStatus.TIMEDOUT,
})


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NONE = "none"


class Certification(str, Enum):
    NONE = "none"
    NORMAL = "normal"
    YES = "yes"
    LAW = "law"
    N_LAW = "n_law"
    HEALTH = "health"
    N_HEALTH = "n_health"
    BOTH = "both"


class JobType(str, Enum):
    PAID = "paid"
    RWS = "rws"
    UNPAID = "unpaid"
    UNKNOWN = "unknown"


class TranslatorType(str, Enum):
    PROFESSIONAL = "professional"
    RWS_TRANSLATOR = "rwstranslator"
    VOLUNTEER = "volunteer"


class TranslatorLevel(str, Enum):
    CERTIFIED = "Certified"
    CERTIFIED_LAW = "Certified with specialisation in law"
    CERTIFIED_HEALTH = "Certified with specialisation in health care"
    LAYMAN = "Layman"
    READ_TRANSLATION_COURSES = "Read Translation courses"


# Customer consumer_type -> job_type of the bookings they create
_JOB_TYPE_BY_CONSUMER = {
    "rwsconsumer": JobType.RWS,
    "ngo": JobType.UNPAID,
    "paid": JobType.PAID,
}


def job_type_for_consumer(consumer_type: str | None) -> JobType:
    return _JOB_TYPE_BY_CONSUMER.get(consumer_type or "", JobType.UNKNOWN)


def job_type_for_translator(translator_type: TranslatorType | None) -> JobType:
    """The only job type a translator of this type may take."""
    if translator_type is TranslatorType.PROFESSIONAL:
        return JobType.PAID
    if translator_type is TranslatorType.RWS_TRANSLATOR:
        return JobType.RWS
    return JobType.UNPAID


def gender_from_job_for(job_for: Iterable[str]) -> Gender:
    wanted = set(job_for)
    if "male" in wanted:
        return Gender.MALE
    if "female" in wanted:
        return Gender.FEMALE
    return Gender.NONE


def certification_from_job_for(job_for: Iterable[str]) -> Certification:
    wanted = set(job_for)
    if "normal" in wanted:
        if "certified" in wanted:
            return Certification.BOTH
        if "certified_in_law" in wanted:
            return Certification.N_LAW
        if "certified_in_health" in wanted:
            return Certification.N_HEALTH
    if "certified" in wanted:
        return Certification.YES
    if "certified_in_law" in wanted:
        return Certification.LAW
    if "certified_in_health" in wanted:
        return Certification.HEALTH
    return Certification.NORMAL


# ============================================================================
# USERS
# ============================================================================

@dataclass
class NotificationPreferences:
    """Per-user delivery preferences."""
    suppress_all: bool = False  # never push
    suppress_emergency: bool = False  # no pushes for immediate jobs
    suppress_nighttime: bool = False  # delay pushes sent at night to the next business window


@dataclass
class UserMeta:
    translator_type: Optional[TranslatorType] = None
    gender: Gender = Gender.NONE
    translator_level: frozenset[TranslatorLevel] = frozenset()
    languages: frozenset[int] = frozenset()
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)

    # Customer profile
    consumer_type: Optional[str] = None
    customer_type: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    instructions: Optional[str] = None


@dataclass
class User:
    id: int
    name: str
    email: str
    user_type: int  # role id, see Settings.*_role_id
    enabled: bool = True
    mobile: Optional[str] = None
    meta: UserMeta = field(default_factory=UserMeta)


# ============================================================================
# JOBS & ASSIGNMENTS
# ============================================================================

@dataclass
class Job:
    """A single interpretation request."""
    id: Optional[int]
    user_id: int  # customer who booked
    status: JobStatus
    due: datetime
    from_language_id: int
    duration: int = 0  # minutes
    gender: Gender = Gender.NONE
    certification: Certification = Certification.NORMAL
    job_type: JobType = JobType.UNKNOWN
    immediate: bool = False
    customer_phone_type: bool = False
    customer_physical_type: bool = False
    town: Optional[str] = None
    address: Optional[str] = None
    instructions: Optional[str] = None
    user_email: Optional[str] = None
    admin_comments: str = ""
    reference: str = ""
    session_time: Optional[str] = None  # "H:M:S"
    end_at: Optional[datetime] = None
    withdraw_at: Optional[datetime] = None
    will_expire_at: Optional[datetime] = None
    ignore: bool = False
    ignore_expired: bool = False
    by_admin: bool = False
    specific_translator_id: Optional[int] = None  # pre-targeted at one translator

    # Reminder bookkeeping, cleared when a job is reopened
    email_sent: bool = False
    email_sent_to_vendor: bool = False
    cust_16_hour_email: bool = False
    cust_48_hour_email: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_physical_only(self) -> bool:
        return self.customer_physical_type and not self.customer_phone_type

    def copy(self, **changes: Any) -> "Job":
        return replace(self, **changes)


@dataclass
class TranslatorAssignment:
    """Binding of one translator to one job."""
    id: Optional[int]
    job_id: int
    translator_id: int
    created_at: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.cancel_at is None

    @property
    def is_open(self) -> bool:
        """Active and not yet completed."""
        return self.cancel_at is None and self.completed_at is None

    def copy(self, **changes: Any) -> "TranslatorAssignment":
        return replace(self, **changes)


# ============================================================================
# PAYLOAD SNAPSHOT
# ============================================================================

_CERTIFICATION_LABELS: dict[Certification, list[str]] = {
    Certification.BOTH: ["normal", "certified"],
    Certification.YES: ["certified"],
}


def job_for_labels(job: Job) -> list[str]:
    labels: list[str] = []
    if job.gender is Gender.MALE:
        labels.append("male")
    elif job.gender is Gender.FEMALE:
        labels.append("female")
    labels.extend(_CERTIFICATION_LABELS.get(job.certification, [job.certification.value]))
    return labels


def job_to_data(job: Job, *, customer_type: str | None = None) -> dict[str, Any]:
    """Flat, JSON-serializable snapshot of a job (push payload data)."""
    return {
        "job_id": job.id,
        "from_language_id": job.from_language_id,
        "immediate": "yes" if job.immediate else "no",
        "duration": job.duration,
        "status": job.status.value,
        "gender": job.gender.value,
        "certified": job.certification.value,
        "due": job.due.strftime("%Y-%m-%d %H:%M:%S"),
        "due_date": job.due.date().isoformat(),
        "due_time": job.due.strftime("%H:%M:%S"),
        "job_type": job.job_type.value,
        "customer_phone_type": "yes" if job.customer_phone_type else "no",
        "customer_physical_type": "yes" if job.customer_physical_type else "no",
        "customer_town": job.town,
        "customer_type": customer_type,
        "job_for": job_for_labels(job),
    }
