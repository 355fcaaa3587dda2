"""Current time and civil-calendar arithmetic for the configured timezone.

Every other module receives instants or day keys produced here; none of them
call ``datetime.now()`` or build midnights on their own. Instants returned by
this module are timezone-aware and normalised to UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


class Clock:
    def __init__(self, tz: Optional[str] = None) -> None:
        self.tz_name = tz or get_settings().timezone
        self.tz = ZoneInfo(self.tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            raise ValueError("Naive datetimes have no civil day")
        return instant.astimezone(self.tz)

    def civil_date(self, instant: datetime) -> date:
        return self.localize(instant).date()

    def start_of_civil_date(self, day: date) -> datetime:
        # midnight may not exist on DST days; the UTC round trip picks the first valid instant
        local_midnight = datetime.combine(day, time.min, tzinfo=self.tz)
        return local_midnight.astimezone(timezone.utc)

    def civil_day_start(self, instant: datetime) -> datetime:
        return self.start_of_civil_date(self.civil_date(instant))

    def shift_civil_days(self, instant: datetime, days: int) -> datetime:
        """Midnight of the civil day ``days`` after the one holding ``instant``."""
        return self.start_of_civil_date(self.civil_date(instant) + timedelta(days=days))

    def to_civil_date_key(self, instant: datetime) -> str:
        return self.civil_date(instant).isoformat()

    def format_civil_date(self, instant: datetime) -> str:
        return self.civil_date(instant).strftime("%d/%m/%Y")


class SystemClock(Clock):
    pass


class FixedClock(Clock):
    """Clock pinned to one instant; ``advance`` moves it forward explicitly."""

    def __init__(self, instant: datetime, tz: Optional[str] = None) -> None:
        super().__init__(tz)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def advance(self, **delta: float) -> None:
        self._instant = self._instant + timedelta(**delta)
