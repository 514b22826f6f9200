# bookings/infra/clock.py
from datetime import datetime, timezone


class SystemClock:
    """Wall clock, UTC, timezone-aware."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
