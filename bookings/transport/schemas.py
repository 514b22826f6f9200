# bookings/transport/schemas.py
from pydantic import AwareDatetime, BaseModel, Field

from bookings.core.domain import JobStatus


class ActorIn(BaseModel):
    user_id: int = Field(gt=0)


class BookingIn(ActorIn):
    from_language_id: int | None = None
    due_date: str | None = Field(default=None, pattern=r"^\d{2}/\d{2}/\d{4}$")
    due_time: str | None = Field(default=None, pattern=r"^\d{1,2}:\d{2}$")
    duration: int | None = Field(default=None, ge=0, le=24 * 60)
    immediate: bool = False
    customer_phone_type: bool | None = None
    customer_physical_type: bool | None = None
    job_for: list[str] = Field(default_factory=list, max_length=10)
    by_admin: bool = False
    specific_translator_id: int | None = None


class ConfirmIn(BaseModel):
    user_email: str | None = Field(default=None, max_length=255)
    reference: str = Field(default="", max_length=255)
    address: str | None = Field(default=None, max_length=500)
    instructions: str | None = Field(default=None, max_length=2000)
    town: str | None = Field(default=None, max_length=128)


class AcceptIn(BaseModel):
    translator_id: int = Field(gt=0)
    push_customer: bool = False


class UpdateIn(ActorIn):
    status: JobStatus | None = None
    due: AwareDatetime | None = None
    from_language_id: int | None = None
    admin_comments: str = Field(default="", max_length=2000)
    reference: str | None = Field(default=None, max_length=255)
    session_time: str | None = Field(default=None, max_length=16)
    translator_id: int | None = None
    translator_email: str | None = Field(default=None, max_length=255)
