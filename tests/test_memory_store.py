# tests/test_memory_store.py
"""Tests for the in-process booking store"""
import asyncio
from datetime import timedelta

import pytest

from bookings.core.domain import JobStatus, TranslatorAssignment
from bookings.core.errors import AlreadyAssigned, NotFound
from bookings.infra.memory_store import InMemoryBookingStore

from conftest import CUSTOMER_ID, NOW, OTHER_TRANSLATOR_ID, TRANSLATOR_ID, make_customer, make_job, seed_assigned


class TestStagedWrites:
    @pytest.mark.asyncio
    async def test_commit_on_clean_exit(self, store):
        job = store.add_job(make_job())

        async with store.transaction(job.id) as tx:
            loaded = await tx.get_job(job.id)
            loaded.reference = "PO-1"
            await tx.save_job(loaded)
            assert store.jobs[job.id].reference == ""

        assert store.jobs[job.id].reference == "PO-1"

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, store):
        job = store.add_job(make_job())

        with pytest.raises(RuntimeError):
            async with store.transaction(job.id) as tx:
                loaded = await tx.get_job(job.id)
                loaded.status = JobStatus.ASSIGNED
                await tx.save_job(loaded)
                await tx.create_assignment(TranslatorAssignment(id=None, job_id=job.id, translator_id=10))
                raise RuntimeError("boom")

        assert store.jobs[job.id].status is JobStatus.PENDING
        assert store.assignments == {}

    @pytest.mark.asyncio
    async def test_reads_see_own_staged_writes(self, store):
        job = store.add_job(make_job())

        async with store.transaction(job.id) as tx:
            loaded = await tx.get_job(job.id)
            loaded.duration = 90
            await tx.save_job(loaded)
            assert (await tx.get_job(job.id)).duration == 90

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self, store):
        job = store.add_job(make_job())

        loaded = await store.get_job(job.id)
        loaded.status = JobStatus.COMPLETED

        assert store.jobs[job.id].status is JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_save_unknown_job(self, store):
        with pytest.raises(NotFound):
            async with store.transaction() as tx:
                await tx.save_job(make_job(id=404))

    @pytest.mark.asyncio
    async def test_create_job_assigns_id(self, store):
        async with store.transaction() as tx:
            created = await tx.create_job(make_job())

        assert created.id is not None
        assert store.jobs[created.id].user_id == CUSTOMER_ID


class TestAssignments:
    @pytest.mark.asyncio
    async def test_second_active_assignment_rejected(self, store):
        job, _ = seed_assigned(store, TRANSLATOR_ID)

        with pytest.raises(AlreadyAssigned):
            async with store.transaction(job.id) as tx:
                await tx.create_assignment(
                    TranslatorAssignment(id=None, job_id=job.id, translator_id=OTHER_TRANSLATOR_ID),
                )

    @pytest.mark.asyncio
    async def test_cancelled_placeholder_allowed(self, store):
        job, _ = seed_assigned(store, TRANSLATOR_ID)

        async with store.transaction(job.id) as tx:
            await tx.create_assignment(TranslatorAssignment(
                id=None, job_id=job.id, translator_id=99, created_at=NOW, cancel_at=NOW,
            ))

        assert len(store.assignments) == 2

    @pytest.mark.asyncio
    async def test_cancel_unknown_assignment(self, store):
        with pytest.raises(NotFound):
            async with store.transaction() as tx:
                await tx.cancel_assignment(404, NOW)

    @pytest.mark.asyncio
    async def test_conflict_ignores_finished_and_other_jobs(self, store):
        job, assignment = seed_assigned(store, TRANSLATOR_ID)

        assert await store.translator_has_conflict(TRANSLATOR_ID, job.due, 30) is True
        assert await store.translator_has_conflict(TRANSLATOR_ID, job.due, 30, exclude_job_id=job.id) is False
        assert await store.translator_has_conflict(TRANSLATOR_ID, job.due + timedelta(hours=2), 30) is False

        store.assignments[assignment.id].completed_at = NOW
        assert await store.translator_has_conflict(TRANSLATOR_ID, job.due, 30) is False

    @pytest.mark.asyncio
    async def test_pending_job_does_not_block(self, store):
        job, _ = seed_assigned(store, TRANSLATOR_ID, status=JobStatus.PENDING)
        assert await store.translator_has_conflict(TRANSLATOR_ID, job.due, 30) is False


class TestLocks:
    @pytest.mark.asyncio
    async def test_same_job_transactions_serialize(self, store):
        job = store.add_job(make_job())
        order = []

        async def worker(name):
            async with store.transaction(job.id):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_jobs_interleave(self, store):
        first = store.add_job(make_job())
        second = store.add_job(make_job())
        order = []

        async def worker(name, job_id):
            async with store.transaction(job_id):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a", first.id), worker("b", second.id))

        assert order == ["a-in", "b-in", "a-out", "b-out"]


class TestQueries:
    @pytest.mark.asyncio
    async def test_user_by_email_is_case_insensitive(self, store):
        user = await store.get_user_by_email("  Translator10@Example.com ")
        assert user.id == TRANSLATOR_ID

    @pytest.mark.asyncio
    async def test_active_translators(self, store):
        store.add_user(make_customer(2))
        translators = await store.list_active_translators()
        assert sorted(t.id for t in translators) == [TRANSLATOR_ID, OTHER_TRANSLATOR_ID]

    @pytest.mark.asyncio
    async def test_language_name_fallback(self, store):
        assert await store.get_language_name(5) == "Swedish"
        assert await store.get_language_name(42) == "#42"

    @pytest.mark.asyncio
    async def test_blacklist_and_declines(self, store):
        store.block(CUSTOMER_ID, TRANSLATOR_ID)
        store.record_decline(OTHER_TRANSLATOR_ID, 3)

        assert await store.get_blacklist(CUSTOMER_ID) == {TRANSLATOR_ID}
        assert await store.translator_declined(OTHER_TRANSLATOR_ID, 3) is True
        assert await store.translator_declined(TRANSLATOR_ID, 3) is False


class TestTowns:
    @pytest.mark.asyncio
    async def test_customer_without_towns_matches_everyone(self):
        store = InMemoryBookingStore()
        assert await store.towns_compatible(1, 10) is True

    @pytest.mark.asyncio
    async def test_shared_town_required(self):
        store = InMemoryBookingStore()
        store.add_user(make_customer(1), towns=["Stockholm"])
        store.add_user(make_customer(10), towns=["Stockholm", "Uppsala"])
        store.add_user(make_customer(11), towns=["Malmö"])

        assert await store.towns_compatible(1, 10) is True
        assert await store.towns_compatible(1, 11) is False
