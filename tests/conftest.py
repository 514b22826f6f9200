# tests/conftest.py
"""Pytest configuration and fixtures"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bookings.config import Settings  # noqa: E402
from bookings.core.domain import (  # noqa: E402
    Certification,
    Gender,
    Job,
    JobStatus,
    JobType,
    NotificationPreferences,
    TranslatorAssignment,
    TranslatorLevel,
    TranslatorType,
    User,
    UserMeta,
)
from bookings.core.errors import ChannelDeliveryFailed  # noqa: E402
from bookings.core.orchestrator import build_orchestrator  # noqa: E402
from bookings.infra.memory_store import InMemoryBookingStore  # noqa: E402
from bookings.infra.metrics import get_metrics_collector  # noqa: E402

# Monday 11:00 in Stockholm
NOW = datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc)
# Monday 23:30 in Stockholm
NIGHT = datetime(2025, 3, 10, 22, 30, tzinfo=timezone.utc)

CUSTOMER_ID = 1
TRANSLATOR_ID = 10
OTHER_TRANSLATOR_ID = 11
ADMIN_ID = 99
SWEDISH = 5
ARABIC = 6


# ============================================================================
# FAKES
# ============================================================================

class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


class RecordingMailer:
    """Async mock for Mailer"""
    def __init__(self):
        self.sent = []
        self.fail_for: set[str] = set()

    async def send(self, to, display_name, subject, template_key, context):
        if to in self.fail_for:
            raise ChannelDeliveryFailed("email", to, "smtp down")
        self.sent.append({
            "to": to,
            "display_name": display_name,
            "subject": subject,
            "template_key": template_key,
            "context": context,
        })

    def keys(self) -> list[str]:
        return [m["template_key"] for m in self.sent]

    def sent_to(self, address: str) -> list[str]:
        return [m["template_key"] for m in self.sent if m["to"] == address]


class RecordingSms:
    """Async mock for SmsChannel"""
    def __init__(self):
        self.sent = []
        self.fail_for: set[str] = set()

    async def send(self, from_number, to_number, body):
        if to_number in self.fail_for:
            raise ChannelDeliveryFailed("sms", to_number, "rejected")
        self.sent.append({"from": from_number, "to": to_number, "body": body})
        return "queued"


class RecordingPush:
    """Async mock for PushChannel"""
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, recipients, job_id, payload, message, delayed=False):
        if self.fail:
            raise ChannelDeliveryFailed("push", "onesignal", "HTTP 500")
        self.sent.append({
            "recipients": [u.id for u in recipients],
            "job_id": job_id,
            "payload": payload,
            "message": message,
            "delayed": delayed,
        })

    def types(self) -> list[str]:
        return [p["payload"]["notification_type"] for p in self.sent]


# ============================================================================
# BUILDERS
# ============================================================================

def make_customer(user_id: int = CUSTOMER_ID, **meta) -> User:
    meta.setdefault("consumer_type", "paid")
    meta.setdefault("customer_type", "private")
    meta.setdefault("city", "Stockholm")
    return User(
        id=user_id,
        name="Anna Customer",
        email=f"customer{user_id}@example.com",
        user_type=1,
        mobile="+46700000001",
        meta=UserMeta(**meta),
    )


def make_translator(
    user_id: int,
    *,
    languages=(SWEDISH,),
    levels=(TranslatorLevel.LAYMAN,),
    gender: Gender = Gender.FEMALE,
    translator_type: TranslatorType = TranslatorType.PROFESSIONAL,
    preferences: NotificationPreferences | None = None,
    enabled: bool = True,
    mobile: str | None = "+46700000100",
) -> User:
    return User(
        id=user_id,
        name=f"Translator {user_id}",
        email=f"translator{user_id}@example.com",
        user_type=2,
        enabled=enabled,
        mobile=mobile,
        meta=UserMeta(
            translator_type=translator_type,
            gender=gender,
            translator_level=frozenset(levels),
            languages=frozenset(languages),
            preferences=preferences or NotificationPreferences(),
        ),
    )


def make_job(**overrides) -> Job:
    fields = dict(
        id=None,
        user_id=CUSTOMER_ID,
        status=JobStatus.PENDING,
        due=NOW + timedelta(days=3),
        from_language_id=SWEDISH,
        duration=60,
        certification=Certification.NORMAL,
        job_type=JobType.PAID,
        customer_phone_type=True,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return Job(**fields)


def seed_assigned(store: InMemoryBookingStore, translator_id: int, **job_fields) -> tuple[Job, TranslatorAssignment]:
    """Add a job already assigned to ``translator_id``."""
    job_fields.setdefault("status", JobStatus.ASSIGNED)
    job = store.add_job(make_job(**job_fields))
    assignment = store.add_assignment(TranslatorAssignment(
        id=None, job_id=job.id, translator_id=translator_id, created_at=NOW,
    ))
    return job, assignment


def make_settings(**overrides) -> Settings:
    overrides.setdefault("notifications_in_background", False)
    overrides.setdefault("support_phone_number", "+46 8 000 000")
    return Settings(_env_file=None, **overrides)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def sms():
    return RecordingSms()


@pytest.fixture
def push():
    return RecordingPush()


@pytest.fixture
def store():
    store = InMemoryBookingStore(translator_role_id=2)
    store.add_language(SWEDISH, "Swedish")
    store.add_language(ARABIC, "Arabic")
    store.add_user(make_customer())
    store.add_user(make_translator(TRANSLATOR_ID, mobile="+46700000110"))
    store.add_user(make_translator(OTHER_TRANSLATOR_ID, mobile="+46700000111"))
    store.add_user(User(id=ADMIN_ID, name="Admin", email="admin@example.com", user_type=3))
    return store


@pytest.fixture
def orchestrator(store, clock, mailer, sms, push):
    return build_orchestrator(
        make_settings(),
        store=store,
        towns=store,
        mailer=mailer,
        sms=sms,
        push=push,
        clock=clock,
    )
