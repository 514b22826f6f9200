# bookings/core/eligibility.py
"""
Translator matching.

``EligibilityMatcher`` answers "who may take this job" and, from the other
side, "which pending jobs may this translator take".  It only reads from the
store, so any number of calls may run concurrently.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from bookings.core.domain import (
    Certification,
    Gender,
    Job,
    TranslatorLevel,
    User,
    job_type_for_translator,
)
from bookings.core.ports import BookingStore, TownChecker
from bookings.infra.logging_config import get_logger

_CERTIFIED = frozenset({
    TranslatorLevel.CERTIFIED,
    TranslatorLevel.CERTIFIED_LAW,
    TranslatorLevel.CERTIFIED_HEALTH,
})
_LAYMAN = frozenset({TranslatorLevel.LAYMAN, TranslatorLevel.READ_TRANSLATION_COURSES})

ACCEPTED_LEVELS: dict[Certification, frozenset[TranslatorLevel]] = {
    Certification.YES: _CERTIFIED,
    Certification.BOTH: _CERTIFIED | _LAYMAN,
    Certification.LAW: frozenset({TranslatorLevel.CERTIFIED_LAW}),
    Certification.N_LAW: frozenset({TranslatorLevel.CERTIFIED_LAW}),
    Certification.HEALTH: frozenset({TranslatorLevel.CERTIFIED_HEALTH}),
    Certification.N_HEALTH: frozenset({TranslatorLevel.CERTIFIED_HEALTH}),
    Certification.NORMAL: _LAYMAN,
    Certification.NONE: frozenset(TranslatorLevel),
}


def static_rejection(job: Job, translator: User, blacklist: Iterable[int] = ()) -> Optional[str]:
    """
    Evaluate the profile filters in order.

    Returns the name of the first failing filter, or None when the
    translator passes all of them.
    """
    meta = translator.meta
    if job_type_for_translator(meta.translator_type) is not job.job_type:
        return "job_type"
    if job.from_language_id not in meta.languages:
        return "language"
    if job.gender is not Gender.NONE and meta.gender is not job.gender:
        return "gender"
    if not (ACCEPTED_LEVELS[job.certification] & meta.translator_level):
        return "certification"
    if translator.id in set(blacklist):
        return "blacklist"
    return None


class EligibilityMatcher:
    def __init__(self, store: BookingStore, towns: TownChecker, logger: logging.Logger | None = None):
        self.store = store
        self.towns = towns
        self.logger = logger or get_logger(__name__)

    async def eligible_translators(
        self,
        job: Job,
        *,
        candidates: Optional[list[User]] = None,
        exclude_translator_id: Optional[int] = None,
    ) -> list[User]:
        """Subset of ``candidates`` (default: every active translator) qualified and free for ``job``."""
        if candidates is None:
            candidates = await self.store.list_active_translators()
        blacklist = await self.store.get_blacklist(job.user_id)

        pool = [
            t for t in candidates
            if t.enabled and t.id != exclude_translator_id
        ]
        verdicts = await asyncio.gather(*(self._check(job, t, blacklist) for t in pool))
        eligible = [t for t, ok in zip(pool, verdicts) if ok]

        self.logger.debug(
            f"Eligible translators: {len(eligible)}/{len(candidates)}",
            extra={"job_id": job.id},
        )
        return eligible

    async def is_eligible(self, job: Job, translator: User) -> bool:
        blacklist = await self.store.get_blacklist(job.user_id)
        return await self._check(job, translator, blacklist)

    async def potential_jobs(self, translator: User) -> list[Job]:
        """Pending jobs the translator could accept right now."""
        jobs = await self.store.list_pending_jobs()
        verdicts = await asyncio.gather(*(self.is_eligible(job, translator) for job in jobs))
        return [job for job, ok in zip(jobs, verdicts) if ok]

    async def _check(self, job: Job, translator: User, blacklist: set[int]) -> bool:
        reason = static_rejection(job, translator, blacklist)
        if reason is not None:
            return False

        is_specific = job.specific_translator_id is not None
        if is_specific:
            if translator.id != job.specific_translator_id:
                return False
            if job.id is not None and await self.store.translator_declined(translator.id, job.id):
                return False

        if job.is_physical_only and not is_specific:
            if not await self.towns.towns_compatible(job.user_id, translator.id):
                return False

        return not await self.store.translator_has_conflict(
            translator.id, job.due, job.duration, exclude_job_id=job.id,
        )
