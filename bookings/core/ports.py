# bookings/core/ports.py
from __future__ import annotations
from datetime import datetime
from typing import Any, AsyncContextManager, Iterable, Optional, Protocol

from bookings.core.domain import Job, JobStatus, TranslatorAssignment, User


# ============================================================================
# STORE
# ============================================================================

class BookingTransaction(Protocol):
    """
    Unit of work scoped to one job (and optionally one translator).

    Reads inside the transaction observe the committed state plus this
    transaction's own staged writes.  Writes are applied only when the
    context manager exits without an exception.
    """

    async def get_job(self, job_id: int) -> Optional[Job]: ...
    async def save_job(self, job: Job) -> Job: ...
    async def create_job(self, job: Job) -> Job: ...

    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]: ...
    async def list_active_assignments(self, job_id: int) -> list[TranslatorAssignment]: ...
    async def create_assignment(self, assignment: TranslatorAssignment) -> TranslatorAssignment: ...
    async def cancel_assignment(self, assignment_id: int, at: datetime) -> None: ...
    async def complete_assignment(self, assignment_id: int, completed_by: int, at: datetime) -> None: ...

    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool: ...

    async def get_user_by_email(self, email: str) -> Optional[User]: ...


class BookingStore(Protocol):
    """Single source of truth for jobs, assignments and the user directory."""

    def transaction(
        self, job_id: Optional[int] = None, *, translator_id: Optional[int] = None,
    ) -> AsyncContextManager[BookingTransaction]:
        """
        Open a unit of work.

        ``job_id`` locks the job row for the duration of the transaction so
        that concurrent status/assignment decisions on the same job serialize.
        ``translator_id`` additionally serializes bookings of one translator
        across different jobs (time-conflict check).
        """
        ...

    # Single reads (no locks beyond the store's own)
    async def get_job(self, job_id: int) -> Optional[Job]: ...
    async def get_active_assignment(self, job_id: int) -> Optional[TranslatorAssignment]: ...
    async def get_user(self, user_id: int) -> Optional[User]: ...
    async def get_user_by_email(self, email: str) -> Optional[User]: ...
    async def get_language_name(self, language_id: int) -> str: ...

    # Matching inputs
    async def list_active_translators(self) -> list[User]: ...
    async def get_blacklist(self, customer_id: int) -> set[int]: ...
    async def translator_declined(self, translator_id: int, job_id: int) -> bool: ...
    async def translator_has_conflict(
        self, translator_id: int, due: datetime, duration: int, *, exclude_job_id: Optional[int] = None,
    ) -> bool: ...

    # Listings
    async def list_pending_jobs(self) -> list[Job]: ...
    async def list_customer_jobs(self, customer_id: int, statuses: Iterable[JobStatus]) -> list[Job]: ...
    async def list_translator_jobs(self, translator_id: int, *, completed: bool) -> list[Job]: ...


class TownChecker(Protocol):
    """Geography collaborator for physical-only jobs."""

    async def towns_compatible(self, customer_id: int, translator_id: int) -> bool: ...


# ============================================================================
# CHANNELS
# ============================================================================

class Mailer(Protocol):
    async def send(
        self, to: str, display_name: str, subject: str, template_key: str, context: dict[str, Any],
    ) -> None:
        """Raises ChannelDeliveryFailed when the message cannot be handed off."""
        ...


class SmsChannel(Protocol):
    async def send(self, from_number: str, to_number: str, body: str) -> str:
        """Returns the provider delivery status."""
        ...


class PushChannel(Protocol):
    async def send(
        self,
        recipients: list[User],
        job_id: Optional[int],
        payload: dict[str, Any],
        message: str,
        delayed: bool = False,
    ) -> None:
        """``delayed=True`` schedules delivery for the next business-time window."""
        ...


class Clock(Protocol):
    def now(self) -> datetime: ...
