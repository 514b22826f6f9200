# bookings/core/errors.py
"""
Typed domain errors and the result value returned by use cases.

Components raise ``BookingError`` subtypes.  ``BookingOrchestrator`` catches
them and converts them into ``BookingResult.fail(...)`` so callers never see
an exception for an expected business outcome.  Anything that is not a
``BookingError`` (store unreachable, broken invariant) propagates.

Each error carries an HTTP status code so the transport layer can map a
failed result without embedding business logic in route handlers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class BookingError(Exception):
    """Base class for all booking domain errors."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, detail: str = "Internal error", *, field_name: str | None = None):
        self.detail = detail
        self.field_name = field_name
        super().__init__(detail)


class ValidationFailed(BookingError):
    """Missing/invalid field, booking date in the past, missing admin comment (400)."""

    code = "validation_failed"
    status_code = 400


class PermissionDenied(BookingError):
    """Acting user's role may not perform this operation (403)."""

    code = "permission_denied"
    status_code = 403


class NotFound(BookingError):
    """Job, assignment or user lookup failed (404)."""

    code = "not_found"
    status_code = 404


class AlreadyBooked(BookingError):
    """Translator already holds an assignment conflicting with the job's due time (409)."""

    code = "already_booked"
    status_code = 409


class AlreadyAssigned(BookingError):
    """Job is no longer pending / already has an active assignment (409)."""

    code = "already_assigned"
    status_code = 409


class CancellationRefused(BookingError):
    """Translator cancellation inside the cancellation window (422)."""

    code = "cancellation_refused"
    status_code = 422


class ChannelDeliveryFailed(BookingError):
    """A single channel send failed.  Logged by the dispatcher, never surfaced (502)."""

    code = "channel_delivery_failed"
    status_code = 502

    def __init__(self, channel: str, recipient: str, detail: str = "delivery failed"):
        self.channel = channel
        self.recipient = recipient
        super().__init__(f"{channel} -> {recipient}: {detail}")


# Result codes for outcomes that are not errors
NO_CHANGE = "no_change"
TRANSITION_REFUSED = "transition_refused"


@dataclass
class BookingResult:
    """Structured outcome of a use case."""

    status: str  # "success" | "fail" | "unchanged"
    message: str = ""
    code: str | None = None
    field_name: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    side_effects: list[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def status_code(self) -> int:
        if self.status != "fail":
            return 200
        return _STATUS_BY_CODE.get(self.code or "", 500)

    @classmethod
    def success(cls, message: str = "", *, data: dict[str, Any] | None = None,
                side_effects: list[Any] | None = None) -> "BookingResult":
        return cls("success", message, data=data or {}, side_effects=side_effects or [])

    @classmethod
    def unchanged(cls, message: str = "", *, code: str = NO_CHANGE,
                  data: dict[str, Any] | None = None) -> "BookingResult":
        return cls("unchanged", message, code=code, data=data or {})

    @classmethod
    def fail(cls, error: BookingError) -> "BookingResult":
        return cls("fail", error.detail, code=error.code, field_name=error.field_name)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status}
        if self.message:
            out["message"] = self.message
        if self.code:
            out["code"] = self.code
        if self.field_name:
            out["field_name"] = self.field_name
        if self.data:
            out["data"] = self.data
        if self.side_effects:
            out["side_effects"] = [str(effect) for effect in self.side_effects]
        return out


_STATUS_BY_CODE: dict[str, int] = {
    cls.code: cls.status_code
    for cls in (
        ValidationFailed,
        PermissionDenied,
        NotFound,
        AlreadyBooked,
        AlreadyAssigned,
        CancellationRefused,
        ChannelDeliveryFailed,
    )
}
