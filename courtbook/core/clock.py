"""Clock abstraction used for past-slot and hold-expiry checks."""
from datetime import date, datetime
from typing import Callable, Optional

import pytz

from courtbook.core.config import settings


class Clock:
    """Supplies the current time in the venue timezone.

    Pass ``now_provider`` to pin the time (tests, replays). A naive value from
    the provider is taken to be venue-local time.
    """

    def __init__(
        self,
        timezone: Optional[str] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
    ):
        self.tz = pytz.timezone(timezone or settings.VENUE_TIMEZONE)
        self._now_provider = now_provider

    def now(self) -> datetime:
        """Return the current time as an aware datetime in the venue timezone."""
        if self._now_provider is None:
            return datetime.now(pytz.UTC).astimezone(self.tz)

        current = self._now_provider()
        if current.tzinfo is None:
            return self.tz.localize(current)
        return current.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()


system_clock = Clock()
