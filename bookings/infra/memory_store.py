# bookings/infra/memory_store.py
"""
In-process booking store.

Implements ``BookingStore`` and ``TownChecker`` on plain dicts.  Used by the
test suite and for local development without PostgreSQL.

Transactions lock the job (and optionally the translator) with
``asyncio.Lock`` and stage their writes; staged writes are applied only when
the transaction exits cleanly.  Everything handed out is a deep copy, so no
caller can mutate store state outside a transaction.
"""
from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, Optional

from bookings.core.domain import Job, JobStatus, TranslatorAssignment, User
from bookings.core.errors import AlreadyAssigned, NotFound
from bookings.core.timing import windows_overlap


BUSY_STATUSES = frozenset({JobStatus.ASSIGNED, JobStatus.STARTED})


class _MemoryTransaction:
    def __init__(self, store: "InMemoryBookingStore"):
        self._store = store
        self._jobs: dict[int, Job] = {}
        self._assignments: dict[int, TranslatorAssignment] = {}

    # Jobs

    async def get_job(self, job_id: int) -> Optional[Job]:
        await asyncio.sleep(0)  # let concurrent transactions interleave
        job = self._jobs.get(job_id) or self._store.jobs.get(job_id)
        return copy.deepcopy(job)

    async def save_job(self, job: Job) -> Job:
        if job.id is None or (job.id not in self._jobs and job.id not in self._store.jobs):
            raise NotFound(f"Job {job.id} not found")
        self._jobs[job.id] = copy.deepcopy(job)
        return copy.deepcopy(job)

    async def create_job(self, job: Job) -> Job:
        created = job.copy(id=next(self._store._job_ids))
        self._jobs[created.id] = copy.deepcopy(created)
        return created

    # Assignments

    def _assignment_view(self) -> dict[int, TranslatorAssignment]:
        return {**self._store.assignments, **self._assignments}

    def _job_view(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id) or self._store.jobs.get(job_id)

    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]:
        active = await self.list_active_assignments(job_id)
        return active[0] if active else None

    async def list_active_assignments(self, job_id: int) -> list[TranslatorAssignment]:
        await asyncio.sleep(0)
        return [
            copy.deepcopy(a) for a in self._assignment_view().values()
            if a.job_id == job_id and a.is_active
        ]

    async def create_assignment(self, assignment: TranslatorAssignment) -> TranslatorAssignment:
        if assignment.is_active and any(
            a.job_id == assignment.job_id and a.is_active for a in self._assignment_view().values()
        ):
            raise AlreadyAssigned(f"Job {assignment.job_id} already has an active assignment")
        created = assignment.copy(id=next(self._store._assignment_ids))
        self._assignments[created.id] = copy.deepcopy(created)
        return created

    async def cancel_assignment(self, assignment_id: int, at: datetime) -> None:
        self._assignments[assignment_id] = self._require_assignment(assignment_id).copy(cancel_at=at)

    async def complete_assignment(self, assignment_id: int, completed_by: int, at: datetime) -> None:
        self._assignments[assignment_id] = self._require_assignment(assignment_id).copy(
            completed_at=at, completed_by=completed_by,
        )

    def _require_assignment(self, assignment_id: int) -> TranslatorAssignment:
        assignment = self._assignment_view().get(assignment_id)
        if assignment is None:
            raise NotFound(f"Assignment {assignment_id} not found")
        return assignment

    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool:
        await asyncio.sleep(0)
        return self._store._has_conflict(
            self._assignment_view().values(), self._job_view, translator_id, due, duration, exclude_job_id,
        )

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await self._store.get_user_by_email(email)

    def commit(self) -> None:
        self._store.jobs.update(self._jobs)
        self._store.assignments.update(self._assignments)


class InMemoryBookingStore:
    def __init__(self, translator_role_id: int = 2):
        self.translator_role_id = translator_role_id
        self.jobs: dict[int, Job] = {}
        self.assignments: dict[int, TranslatorAssignment] = {}
        self.users: dict[int, User] = {}
        self.languages: dict[int, str] = {}
        self.blacklist: set[tuple[int, int]] = set()  # (customer_id, translator_id)
        self.declines: set[tuple[int, int]] = set()  # (translator_id, job_id)
        self.towns: dict[int, set[str]] = defaultdict(set)

        self._job_ids = itertools.count(1)
        self._assignment_ids = itertools.count(1)
        self._job_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._translator_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_user(self, user: User, *, towns: Iterable[str] = ()) -> User:
        self.users[user.id] = copy.deepcopy(user)
        self.towns[user.id].update(towns)
        return user

    def add_language(self, language_id: int, name: str) -> None:
        self.languages[language_id] = name

    def add_job(self, job: Job) -> Job:
        if job.id is None:
            job = job.copy(id=next(self._job_ids))
        self.jobs[job.id] = copy.deepcopy(job)
        return job

    def add_assignment(self, assignment: TranslatorAssignment) -> TranslatorAssignment:
        if assignment.id is None:
            assignment = assignment.copy(id=next(self._assignment_ids))
        self.assignments[assignment.id] = copy.deepcopy(assignment)
        return assignment

    def block(self, customer_id: int, translator_id: int) -> None:
        self.blacklist.add((customer_id, translator_id))

    def record_decline(self, translator_id: int, job_id: int) -> None:
        self.declines.add((translator_id, job_id))

    # ------------------------------------------------------------------
    # BookingStore
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(
        self, job_id: Optional[int] = None, *, translator_id: Optional[int] = None,
    ) -> AsyncIterator[_MemoryTransaction]:
        async with AsyncExitStack() as stack:
            if job_id is not None:
                await stack.enter_async_context(self._job_locks[job_id])
            if translator_id is not None:
                await stack.enter_async_context(self._translator_locks[translator_id])
            tx = _MemoryTransaction(self)
            yield tx
            tx.commit()

    async def get_job(self, job_id: int) -> Optional[Job]:
        return copy.deepcopy(self.jobs.get(job_id))

    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]:
        for assignment in self.assignments.values():
            if assignment.job_id == job_id and assignment.is_active:
                return copy.deepcopy(assignment)
        return None

    async def get_user(self, user_id: int) -> Optional[User]:
        return copy.deepcopy(self.users.get(user_id))

    async def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for user in self.users.values():
            if user.email.lower() == wanted:
                return copy.deepcopy(user)
        return None

    async def get_language_name(self, language_id: int) -> str:
        return self.languages.get(language_id, f"#{language_id}")

    async def list_active_translators(self) -> list[User]:
        return [
            copy.deepcopy(u) for u in self.users.values()
            if u.user_type == self.translator_role_id and u.enabled
        ]

    async def get_blacklist(self, customer_id: int) -> set[int]:
        return {t for c, t in self.blacklist if c == customer_id}

    async def translator_declined(self, translator_id: int, job_id: int) -> bool:
        return (translator_id, job_id) in self.declines

    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool:
        return self._has_conflict(
            self.assignments.values(), self.jobs.get, translator_id, due, duration, exclude_job_id,
        )

    async def list_pending_jobs(self) -> list[Job]:
        return [copy.deepcopy(j) for j in self.jobs.values() if j.status is JobStatus.PENDING]

    async def list_customer_jobs(self, customer_id: int, statuses: Iterable[JobStatus]) -> list[Job]:
        wanted = set(statuses)
        jobs = [j for j in self.jobs.values() if j.user_id == customer_id and j.status in wanted]
        return [copy.deepcopy(j) for j in sorted(jobs, key=lambda j: j.due)]

    async def list_translator_jobs(self, translator_id: int, *, completed: bool) -> list[Job]:
        job_ids = {
            a.job_id for a in self.assignments.values()
            if a.translator_id == translator_id
            and a.is_active
            and (a.completed_at is not None) == completed
        }
        jobs = [self.jobs[i] for i in job_ids if i in self.jobs]
        if not completed:
            jobs = [j for j in jobs if j.status.is_open]
        return [copy.deepcopy(j) for j in sorted(jobs, key=lambda j: j.due)]

    # ------------------------------------------------------------------
    # TownChecker
    # ------------------------------------------------------------------

    async def towns_compatible(self, customer_id: int, translator_id: int) -> bool:
        customer_towns = self.towns.get(customer_id)
        if not customer_towns:
            return True
        return bool(customer_towns & self.towns.get(translator_id, set()))

    # ------------------------------------------------------------------

    @staticmethod
    def _has_conflict(assignments, job_lookup, translator_id, due, duration, exclude_job_id) -> bool:
        for assignment in assignments:
            if assignment.translator_id != translator_id or not assignment.is_open:
                continue
            if assignment.job_id == exclude_job_id:
                continue
            other = job_lookup(assignment.job_id)
            if other is None or other.status not in BUSY_STATUSES:
                continue
            if windows_overlap(due, duration, other.due, other.duration):
                return True
        return False
