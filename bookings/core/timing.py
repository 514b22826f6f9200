# bookings/core/timing.py
"""
Time arithmetic for bookings: immediate due times, expiry, the cancellation
window, business-time windows for delayed pushes and session durations.

All functions take "now" explicitly so callers can inject a clock.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from bookings.core.errors import ValidationFailed


def immediate_due(now: datetime, lead_minutes: int = 5) -> datetime:
    return now + timedelta(minutes=lead_minutes)


def will_expire_at(
    due: datetime,
    created_at: datetime,
    *,
    near_threshold_hours: int = 90,
    far_lead_hours: int = 48,
    min_minutes: int = 90,
) -> datetime:
    """
    Moment after which an unaccepted booking is considered expired.

    Bookings due within ``near_threshold_hours`` of creation expire at the due
    time; further-out bookings expire ``far_lead_hours`` before due.  The
    result is never at or before ``created_at``.
    """
    if due - created_at <= timedelta(hours=near_threshold_hours):
        expires = due
    else:
        expires = due - timedelta(hours=far_lead_hours)
    if expires <= created_at:
        expires = created_at + timedelta(minutes=min_minutes)
    return expires


def within_cancellation_window(due: datetime, now: datetime, window_hours: int = 24) -> bool:
    """True when at least ``window_hours`` remain until due (inclusive)."""
    return due - now >= timedelta(hours=window_hours)


def windows_overlap(a_start: datetime, a_minutes: int, b_start: datetime, b_minutes: int) -> bool:
    """Half-open interval overlap.  A zero duration is treated as one minute."""
    a_end = a_start + timedelta(minutes=max(a_minutes, 1))
    b_end = b_start + timedelta(minutes=max(b_minutes, 1))
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class BusinessHours:
    """Night window in the business timezone; pushes to night-suppressing users wait for morning."""
    timezone: str = "Europe/Stockholm"
    night_start_hour: int = 22
    night_end_hour: int = 7

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_night(self, now: datetime) -> bool:
        hour = now.astimezone(self.tz).hour
        if self.night_start_hour > self.night_end_hour:
            return hour >= self.night_start_hour or hour < self.night_end_hour
        return self.night_start_hour <= hour < self.night_end_hour

    def next_business_time(self, now: datetime) -> datetime:
        """Start of the next business window (``now`` itself during the day)."""
        local = now.astimezone(self.tz)
        if not self.is_night(now):
            return now
        morning = datetime.combine(local.date(), time(self.night_end_hour), tzinfo=self.tz)
        if local >= morning:
            morning = datetime.combine(local.date() + timedelta(days=1), time(self.night_end_hour), tzinfo=self.tz)
        return morning

    def localize(self, naive: datetime) -> datetime:
        return naive.replace(tzinfo=self.tz)


def parse_due(due_date: str, due_time: str, business: BusinessHours) -> datetime:
    """Parse ``MM/DD/YYYY`` + ``HH:MM`` entered in the business timezone."""
    try:
        naive = datetime.strptime(f"{due_date} {due_time}", "%m/%d/%Y %H:%M")
    except ValueError:
        raise ValidationFailed("Invalid due date or time", field_name="due_date")
    return business.localize(naive)


def parse_session_time(value: str | None) -> timedelta:
    """Parse an ``H:M:S`` session duration."""
    if not value or not value.strip():
        raise ValidationFailed("You must fill the session time", field_name="session_time")
    parts = value.strip().split(":")
    try:
        hours, minutes, seconds = (int(p) for p in parts)
    except ValueError:
        raise ValidationFailed("Session time must be H:M:S", field_name="session_time")
    if minutes < 0 or seconds < 0 or hours < 0:
        raise ValidationFailed("Session time must be H:M:S", field_name="session_time")
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def format_session_time(delta: timedelta) -> str:
    total = max(int(delta.total_seconds()), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def duration_label(minutes: int) -> str:
    """Human readable duration, e.g. ``45min``, ``1h``, ``2h 30min``."""
    if minutes < 60:
        return f"{minutes}min"
    if minutes == 60:
        return "1h"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}min"


def session_label(session: timedelta) -> str:
    return duration_label(int(session.total_seconds()) // 60)
