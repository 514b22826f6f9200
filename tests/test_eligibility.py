# tests/test_eligibility.py
"""Tests for translator matching in bookings/core/eligibility.py"""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from bookings.core.domain import Certification, Gender, JobStatus, JobType, TranslatorLevel, TranslatorType
from bookings.core.eligibility import ACCEPTED_LEVELS, EligibilityMatcher, static_rejection

from conftest import (
    ARABIC,
    CUSTOMER_ID,
    NOW,
    OTHER_TRANSLATOR_ID,
    TRANSLATOR_ID,
    make_job,
    make_translator,
    seed_assigned,
)


# ============================================================================
# static_rejection
# ============================================================================

class TestStaticRejection:
    def test_eligible(self):
        assert static_rejection(make_job(), make_translator(1)) is None

    def test_job_type_first(self):
        translator = make_translator(1, translator_type=TranslatorType.VOLUNTEER, languages=())
        assert static_rejection(make_job(job_type=JobType.PAID), translator) == "job_type"

    def test_language(self):
        assert static_rejection(make_job(from_language_id=ARABIC), make_translator(1)) == "language"

    def test_gender(self):
        job = make_job(gender=Gender.MALE)
        assert static_rejection(job, make_translator(1, gender=Gender.FEMALE)) == "gender"
        assert static_rejection(job, make_translator(1, gender=Gender.MALE)) is None

    def test_certification(self):
        job = make_job(certification=Certification.LAW)
        assert static_rejection(job, make_translator(1)) == "certification"
        lawyer = make_translator(1, levels=(TranslatorLevel.CERTIFIED_LAW,))
        assert static_rejection(job, lawyer) is None

    def test_blacklist(self):
        assert static_rejection(make_job(), make_translator(1), blacklist={1}) == "blacklist"

    @pytest.mark.parametrize("certification,level,accepted", [
        (Certification.YES, TranslatorLevel.CERTIFIED_HEALTH, True),
        (Certification.YES, TranslatorLevel.LAYMAN, False),
        (Certification.BOTH, TranslatorLevel.READ_TRANSLATION_COURSES, True),
        (Certification.N_HEALTH, TranslatorLevel.CERTIFIED_HEALTH, True),
        (Certification.N_HEALTH, TranslatorLevel.CERTIFIED_LAW, False),
        (Certification.NORMAL, TranslatorLevel.CERTIFIED, False),
        (Certification.NONE, TranslatorLevel.CERTIFIED, True),
    ])
    def test_accepted_levels(self, certification, level, accepted):
        assert (level in ACCEPTED_LEVELS[certification]) is accepted

    def test_every_certification_has_levels(self):
        assert set(ACCEPTED_LEVELS) == set(Certification)


# ============================================================================
# EligibilityMatcher
# ============================================================================

class TestEligibleTranslators:
    @pytest.mark.asyncio
    async def test_all_qualified_translators(self, store):
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job())

        eligible = await matcher.eligible_translators(job)

        assert {t.id for t in eligible} == {TRANSLATOR_ID, OTHER_TRANSLATOR_ID}

    @pytest.mark.asyncio
    async def test_disabled_translator_excluded(self, store):
        store.add_user(make_translator(12, enabled=False))
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job())

        candidates = [make_translator(12, enabled=False)]
        assert await matcher.eligible_translators(job, candidates=candidates) == []

    @pytest.mark.asyncio
    async def test_exclude_translator(self, store):
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job())

        eligible = await matcher.eligible_translators(job, exclude_translator_id=TRANSLATOR_ID)

        assert [t.id for t in eligible] == [OTHER_TRANSLATOR_ID]

    @pytest.mark.asyncio
    async def test_blacklisted_translator_never_returned(self, store):
        store.block(CUSTOMER_ID, TRANSLATOR_ID)
        matcher = EligibilityMatcher(store, store)

        for job_fields in (
            {},
            {"immediate": True},
            {"customer_phone_type": False, "customer_physical_type": True},
            {"certification": Certification.NONE},
        ):
            job = store.add_job(make_job(**job_fields))
            eligible = await matcher.eligible_translators(job)
            assert TRANSLATOR_ID not in {t.id for t in eligible}

    @pytest.mark.asyncio
    async def test_specific_translator_only(self, store):
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(specific_translator_id=OTHER_TRANSLATOR_ID))

        eligible = await matcher.eligible_translators(job)

        assert [t.id for t in eligible] == [OTHER_TRANSLATOR_ID]

    @pytest.mark.asyncio
    async def test_specific_translator_who_declined(self, store):
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(specific_translator_id=OTHER_TRANSLATOR_ID))
        store.record_decline(OTHER_TRANSLATOR_ID, job.id)

        assert await matcher.eligible_translators(job) == []

    @pytest.mark.asyncio
    async def test_physical_job_requires_shared_town(self, store):
        store.towns[CUSTOMER_ID] = {"Stockholm"}
        store.towns[TRANSLATOR_ID] = {"Stockholm", "Uppsala"}
        store.towns[OTHER_TRANSLATOR_ID] = {"Malmo"}
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(customer_phone_type=False, customer_physical_type=True))

        eligible = await matcher.eligible_translators(job)

        assert [t.id for t in eligible] == [TRANSLATOR_ID]

    @pytest.mark.asyncio
    async def test_phone_job_ignores_towns(self, store):
        store.towns[CUSTOMER_ID] = {"Stockholm"}
        store.towns[OTHER_TRANSLATOR_ID] = {"Malmo"}
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(customer_phone_type=True, customer_physical_type=True))

        eligible = await matcher.eligible_translators(job)

        assert OTHER_TRANSLATOR_ID in {t.id for t in eligible}

    @pytest.mark.asyncio
    async def test_specific_physical_job_skips_town_check(self, store):
        towns = AsyncMock()
        towns.towns_compatible.return_value = False
        matcher = EligibilityMatcher(store, towns)
        job = store.add_job(make_job(
            customer_phone_type=False, customer_physical_type=True, specific_translator_id=TRANSLATOR_ID,
        ))

        eligible = await matcher.eligible_translators(job)

        assert [t.id for t in eligible] == [TRANSLATOR_ID]
        towns.towns_compatible.assert_not_called()

    @pytest.mark.asyncio
    async def test_busy_translator_excluded(self, store):
        seed_assigned(store, TRANSLATOR_ID, due=NOW + timedelta(days=3, minutes=30), duration=60)
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(due=NOW + timedelta(days=3), duration=60))

        eligible = await matcher.eligible_translators(job)

        assert [t.id for t in eligible] == [OTHER_TRANSLATOR_ID]

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_block(self, store):
        seed_assigned(
            store, TRANSLATOR_ID, status=JobStatus.WITHDRAW_BEFORE_24, due=NOW + timedelta(days=3),
        )
        matcher = EligibilityMatcher(store, store)
        job = store.add_job(make_job(due=NOW + timedelta(days=3)))

        assert await matcher.is_eligible(job, make_translator(TRANSLATOR_ID))


class TestPotentialJobs:
    @pytest.mark.asyncio
    async def test_pending_jobs_the_translator_may_take(self, store):
        matcher = EligibilityMatcher(store, store)
        open_job = store.add_job(make_job())
        store.add_job(make_job(from_language_id=ARABIC))
        store.add_job(make_job(status=JobStatus.ASSIGNED))
        store.add_job(make_job(specific_translator_id=OTHER_TRANSLATOR_ID))

        jobs = await matcher.potential_jobs(make_translator(TRANSLATOR_ID))

        assert [j.id for j in jobs] == [open_job.id]
