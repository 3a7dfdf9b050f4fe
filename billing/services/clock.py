"""Clock abstraction so "now" and "today" can be injected.

Due-date checks compare calendar dates in the business timezone, so the clock
owns that timezone.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock(ABC):
    """Source of the current instant."""

    def __init__(self, tz: str | ZoneInfo = "UTC"):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    @abstractmethod
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""

    def today(self) -> date:
        """Current calendar date in the business timezone."""
        return self.now().astimezone(self.tz).date()


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, instant: datetime, tz: str | ZoneInfo = "UTC"):
        super().__init__(tz)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._now = instant

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        """Move the clock forward by timedelta(**kwargs)."""
        self._now = self._now + timedelta(**kwargs)


__all__ = ["Clock", "SystemClock", "FixedClock"]
