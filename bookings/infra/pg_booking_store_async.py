# bookings/infra/pg_booking_store_async.py
"""
Async PostgreSQL booking store (asyncpg).

Implements ``BookingStore`` and ``TownChecker``.

A transaction holds one connection for its whole duration:
- ``SELECT ... FOR UPDATE`` on the job row serializes decisions on one job
- ``pg_advisory_xact_lock`` on the translator serializes time-conflict checks
  of one translator across different jobs
Both locks are released by COMMIT/ROLLBACK.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, Optional

import asyncpg

from bookings.core.domain import (
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
    parse_enum,
)
from bookings.core.errors import AlreadyAssigned, NotFound
from bookings.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from bookings.infra.logging_config import get_logger

logger = get_logger(__name__)

# First key of the two-int advisory lock, keeps translator locks apart from other users
TRANSLATOR_LOCK_NAMESPACE = 4101

# Job attribute -> jobs column (everything except id)
_JOB_COLUMNS: dict[str, str] = {
    "user_id": "user_id",
    "status": "status",
    "due": "due",
    "from_language_id": "from_language_id",
    "duration": "duration",
    "gender": "gender",
    "certification": "certified",
    "job_type": "job_type",
    "immediate": "immediate",
    "customer_phone_type": "customer_phone_type",
    "customer_physical_type": "customer_physical_type",
    "town": "town",
    "address": "address",
    "instructions": "instructions",
    "user_email": "user_email",
    "admin_comments": "admin_comments",
    "reference": "reference",
    "session_time": "session_time",
    "end_at": "end_at",
    "withdraw_at": "withdraw_at",
    "will_expire_at": "will_expire_at",
    "ignore": "ignore",
    "ignore_expired": "ignore_expired",
    "by_admin": "by_admin",
    "specific_translator_id": "specific_translator_id",
    "email_sent": "email_sent",
    "email_sent_to_vendor": "email_sent_to_vendor",
    "cust_16_hour_email": "cust_16_hour_email",
    "cust_48_hour_email": "cust_48_hour_email",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

_USER_SELECT = """
    SELECT u.id, u.name, u.email, u.user_type, u.enabled, u.mobile,
           m.translator_type, m.gender, m.translator_level,
           m.consumer_type, m.customer_type, m.city, m.address, m.instructions,
           m.not_get_notification, m.not_get_emergency, m.not_get_nighttime,
           ARRAY(SELECT l.lang_id FROM user_languages l WHERE l.user_id = u.id) AS languages
    FROM users u
    LEFT JOIN user_meta m ON m.user_id = u.id
"""

_CONFLICT_SQL = """
    SELECT EXISTS (
        SELECT 1
        FROM translator_job_rel r
        JOIN jobs j ON j.id = r.job_id
        WHERE r.user_id = $1
          AND r.cancel_at IS NULL
          AND r.completed_at IS NULL
          AND j.status IN ('assigned', 'started')
          AND ($4::bigint IS NULL OR j.id <> $4)
          AND j.due < $2 + make_interval(mins => GREATEST($3, 1))
          AND $2 < j.due + make_interval(mins => GREATEST(j.duration, 1))
    )
"""


# ============================================================================
# ROW MAPPING
# ============================================================================

def _row_to_job(row) -> Job:
    """Convert a jobs row; enum columns are validated here and nowhere downstream."""
    values = {attr: row[col] for attr, col in _JOB_COLUMNS.items()}
    values["status"] = parse_enum(JobStatus, row["status"], "status")
    values["gender"] = parse_enum(Gender, row["gender"] or "none", "gender")
    values["certification"] = parse_enum(Certification, row["certified"] or "normal", "certified")
    values["job_type"] = parse_enum(JobType, row["job_type"] or "unknown", "job_type")
    return Job(id=row["id"], **values)


def _job_values(job: Job) -> list:
    values = []
    for attr in _JOB_COLUMNS:
        value = getattr(job, attr)
        if attr in ("status", "gender", "certification", "job_type"):
            value = value.value
        values.append(value)
    return values


def _row_to_assignment(row) -> TranslatorAssignment:
    return TranslatorAssignment(
        id=row["id"],
        job_id=row["job_id"],
        translator_id=row["user_id"],
        created_at=row["created_at"],
        cancel_at=row["cancel_at"],
        completed_at=row["completed_at"],
        completed_by=row["completed_by"],
    )


def _row_to_user(row) -> User:
    translator_type = row["translator_type"]
    meta = UserMeta(
        translator_type=parse_enum(TranslatorType, translator_type, "translator_type") if translator_type else None,
        gender=parse_enum(Gender, row["gender"] or "none", "gender"),
        translator_level=frozenset(
            parse_enum(TranslatorLevel, level, "translator_level") for level in (row["translator_level"] or [])
        ),
        languages=frozenset(row["languages"] or []),
        preferences=NotificationPreferences(
            suppress_all=bool(row["not_get_notification"]),
            suppress_emergency=bool(row["not_get_emergency"]),
            suppress_nighttime=bool(row["not_get_nighttime"]),
        ),
        consumer_type=row["consumer_type"],
        customer_type=row["customer_type"],
        city=row["city"],
        address=row["address"],
        instructions=row["instructions"],
    )
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        user_type=row["user_type"],
        enabled=row["enabled"],
        mobile=row["mobile"],
        meta=meta,
    )


# ============================================================================
# TRANSACTION
# ============================================================================

class _PgTransaction:
    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get_job(self, job_id: int) -> Optional[Job]:
        row = await self.conn.fetchrow("SELECT * FROM jobs WHERE id = $1", job_id)
        return _row_to_job(row) if row else None

    async def save_job(self, job: Job) -> Job:
        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(_JOB_COLUMNS.values(), start=2))
        row = await self.conn.fetchrow(
            f"UPDATE jobs SET {assignments} WHERE id = $1 RETURNING *",
            job.id,
            *_job_values(job),
        )
        if row is None:
            raise NotFound(f"Job {job.id} not found")
        return _row_to_job(row)

    async def create_job(self, job: Job) -> Job:
        columns = ", ".join(_JOB_COLUMNS.values())
        params = ", ".join(f"${i}" for i in range(1, len(_JOB_COLUMNS) + 1))
        row = await self.conn.fetchrow(
            f"INSERT INTO jobs ({columns}) VALUES ({params}) RETURNING *",
            *_job_values(job),
        )
        logger.debug("Job row created", extra={"job_id": row["id"]})
        return _row_to_job(row)

    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]:
        active = await self.list_active_assignments(job_id)
        return active[0] if active else None

    async def list_active_assignments(self, job_id: int) -> list[TranslatorAssignment]:
        rows = await self.conn.fetch(
            "SELECT * FROM translator_job_rel WHERE job_id = $1 AND cancel_at IS NULL ORDER BY id",
            job_id,
        )
        return [_row_to_assignment(r) for r in rows]

    async def create_assignment(self, assignment: TranslatorAssignment) -> TranslatorAssignment:
        try:
            row = await self.conn.fetchrow(
                """
                INSERT INTO translator_job_rel (job_id, user_id, created_at, cancel_at, completed_at, completed_by)
                VALUES ($1, $2, COALESCE($3, now()), $4, $5, $6)
                RETURNING *
                """,
                assignment.job_id,
                assignment.translator_id,
                assignment.created_at,
                assignment.cancel_at,
                assignment.completed_at,
                assignment.completed_by,
            )
        except asyncpg.UniqueViolationError:
            raise AlreadyAssigned(f"Job {assignment.job_id} already has an active assignment")
        return _row_to_assignment(row)

    async def cancel_assignment(self, assignment_id: int, at: datetime) -> None:
        result = await self.conn.execute(
            "UPDATE translator_job_rel SET cancel_at = $2 WHERE id = $1", assignment_id, at,
        )
        if result == "UPDATE 0":
            raise NotFound(f"Assignment {assignment_id} not found")

    async def complete_assignment(self, assignment_id: int, completed_by: int, at: datetime) -> None:
        result = await self.conn.execute(
            "UPDATE translator_job_rel SET completed_at = $2, completed_by = $3 WHERE id = $1",
            assignment_id, at, completed_by,
        )
        if result == "UPDATE 0":
            raise NotFound(f"Assignment {assignment_id} not found")

    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool:
        return await self.conn.fetchval(_CONFLICT_SQL, translator_id, due, duration, exclude_job_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = await self.conn.fetchrow(_USER_SELECT + " WHERE lower(u.email) = lower($1)", email.strip())
        return _row_to_user(row) if row else None


# ============================================================================
# STORE
# ============================================================================

class AsyncPostgresBookingStore:
    def __init__(self, translator_role_id: int = 2):
        self.translator_role_id = translator_role_id

    @asynccontextmanager
    async def transaction(
        self, job_id: Optional[int] = None, *, translator_id: Optional[int] = None,
    ) -> AsyncIterator[_PgTransaction]:
        async with safe_db_conn(autocommit=False) as conn:
            if job_id is not None:
                await conn.execute("SELECT id FROM jobs WHERE id = $1 FOR UPDATE", job_id)
            if translator_id is not None:
                await conn.execute(
                    "SELECT pg_advisory_xact_lock($1::int, $2::int)",
                    TRANSLATOR_LOCK_NAMESPACE, translator_id,
                )
            yield _PgTransaction(conn)

    @retry_on_transient_error()
    async def get_job(self, job_id: int) -> Optional[Job]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM jobs WHERE id = $1", job_id)
            return _row_to_job(row) if row else None

    @retry_on_transient_error()
    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM translator_job_rel WHERE job_id = $1 AND cancel_at IS NULL ORDER BY id LIMIT 1",
                job_id,
            )
            return _row_to_assignment(row) if row else None

    @retry_on_transient_error()
    async def get_user(self, user_id: int) -> Optional[User]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(_USER_SELECT + " WHERE u.id = $1", user_id)
            return _row_to_user(row) if row else None

    @retry_on_transient_error()
    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(_USER_SELECT + " WHERE lower(u.email) = lower($1)", email.strip())
            return _row_to_user(row) if row else None

    @retry_on_transient_error()
    async def get_language_name(self, language_id: int) -> str:
        async with safe_db_conn() as conn:
            name = await conn.fetchval("SELECT name FROM languages WHERE id = $1", language_id)
            return name or f"#{language_id}"

    @retry_on_transient_error()
    async def list_active_translators(self) -> list[User]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                _USER_SELECT + " WHERE u.user_type = $1 AND u.enabled ORDER BY u.id",
                self.translator_role_id,
            )
            return [_row_to_user(r) for r in rows]

    @retry_on_transient_error()
    async def get_blacklist(self, customer_id: int) -> set[int]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch("SELECT translator_id FROM users_blacklist WHERE user_id = $1", customer_id)
            return {r["translator_id"] for r in rows}

    @retry_on_transient_error()
    async def translator_declined(self, translator_id: int, job_id: int) -> bool:
        async with safe_db_conn() as conn:
            return await conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM job_declines WHERE user_id = $1 AND job_id = $2)",
                translator_id, job_id,
            )

    @retry_on_transient_error()
    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool:
        async with safe_db_conn() as conn:
            return await conn.fetchval(_CONFLICT_SQL, translator_id, due, duration, exclude_job_id)

    @retry_on_transient_error()
    async def list_pending_jobs(self) -> list[Job]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch("SELECT * FROM jobs WHERE status = 'pending' ORDER BY due")
            return [_row_to_job(r) for r in rows]

    @retry_on_transient_error()
    async def list_customer_jobs(self, customer_id: int, statuses: Iterable[JobStatus]) -> list[Job]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT * FROM jobs WHERE user_id = $1 AND status = ANY($2::text[]) ORDER BY due",
                customer_id,
                [s.value for s in statuses],
            )
            return [_row_to_job(r) for r in rows]

    @retry_on_transient_error()
    async def list_translator_jobs(self, translator_id: int, *, completed: bool) -> list[Job]:
        if completed:
            condition = "r.completed_at IS NOT NULL"
        else:
            condition = "r.completed_at IS NULL AND j.status IN ('pending', 'assigned', 'started')"
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT j.* FROM jobs j
                JOIN translator_job_rel r ON r.job_id = j.id
                WHERE r.user_id = $1 AND r.cancel_at IS NULL AND {condition}
                ORDER BY j.due
                """,
                translator_id,
            )
            return [_row_to_job(r) for r in rows]

    @retry_on_transient_error()
    async def towns_compatible(self, customer_id: int, translator_id: int) -> bool:
        async with safe_db_conn() as conn:
            return await conn.fetchval(
                """
                SELECT NOT EXISTS (SELECT 1 FROM user_towns WHERE user_id = $1)
                    OR EXISTS (
                        SELECT 1 FROM user_towns c
                        JOIN user_towns t ON t.town = c.town
                        WHERE c.user_id = $1 AND t.user_id = $2
                    )
                """,
                customer_id, translator_id,
            )
