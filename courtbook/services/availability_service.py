"""Availability service: builds the unified slot grid for selected courts."""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from datetime import date, datetime

import httpx

from courtbook.core.clock import Clock, system_clock
from courtbook.schemas.availability import (
    CourtAvailability,
    CourtTimeSlot,
    Hold,
    SlotGrid,
    SlotStatus,
    TimeSlot,
)
from courtbook.schemas.court import Court
from courtbook.services.backend_client import BookingBackendClient, backend_client
from courtbook.services.pricing import (
    PricingPolicy,
    day_of_week,
    day_type_for,
    parse_minutes,
    pricing_policy,
)

logger = logging.getLogger(__name__)


def slot_bounds(hour: int) -> Tuple[str, str]:
    """Return the "HH:00" start and end of the slot starting at ``hour``."""
    return f"{hour:02d}:00", f"{hour + 1:02d}:00"


def overlaps(start: str, end: str, other_start: str, other_end: str) -> bool:
    """Whether ``[start, end)`` and ``[other_start, other_end)`` overlap."""
    a_start, a_end = parse_minutes(start), parse_minutes(end)
    b_start, b_end = parse_minutes(other_start), parse_minutes(other_end)
    if None in (a_start, a_end, b_start, b_end):
        return False
    return a_start < b_end and b_start < a_end


def find_time_slot(
    availability: CourtAvailability, start: str, end: str
) -> Optional[CourtTimeSlot]:
    """Find the live slot matching ``[start, end)`` exactly."""
    for slot in availability.time_slots:
        if parse_minutes(slot.start) == parse_minutes(start) and parse_minutes(slot.end) == parse_minutes(end):
            return slot
    return None


def active_holds(
    availability: CourtAvailability,
    court_id: str,
    start: str,
    end: str,
    now: datetime,
) -> List[Hold]:
    """Return the court's active holds overlapping ``[start, end)``."""
    holds = []
    for held in availability.held_slots:
        if held.hold_until <= now:
            continue
        if not overlaps(held.start, held.end, start, end):
            continue
        holds.append(
            Hold(
                court_id=court_id,
                start=held.start,
                end=held.end,
                hold_until=held.hold_until,
                booking_id=held.booking_id,
            )
        )
    return holds


def is_past_slot(target_date: date, hour: int, now: datetime) -> bool:
    """A slot on today's date is past once its start hour has been reached."""
    return target_date == now.date() and hour <= now.hour


def operating_hours(court: Court, weekday: int) -> Optional[Tuple[int, int]]:
    """
    Return a court's ``(start_hour, end_hour)`` for a weekday.

    Only windows marked available count. Returns None if the court is
    closed that day.
    """
    entry = court.day_availability(weekday)
    if entry is None:
        return None

    open_windows = [w for w in entry.time_slots if w.is_available]
    if not open_windows:
        return None

    starts = [parse_minutes(w.start) for w in open_windows]
    ends = [parse_minutes(w.end) for w in open_windows]
    starts = [s // 60 for s in starts if s is not None]
    ends = [e // 60 for e in ends if e is not None]
    if not starts or not ends:
        return None
    return min(starts), max(ends)


class AvailabilityService:
    """Service computing slot grids from court configuration and live data."""

    def __init__(
        self,
        client: Optional[BookingBackendClient] = None,
        clock: Optional[Clock] = None,
        pricing: Optional[PricingPolicy] = None,
    ):
        self.client = client or backend_client
        self.clock = clock or system_clock
        self.pricing = pricing or pricing_policy

    def common_operating_hours(
        self, courts: List[Court], target_date: date
    ) -> Optional[Tuple[int, int]]:
        """
        Compute the hour range shared by all courts on a date.

        If any court is closed that day the result is None: no partial grids.

        Args:
            courts: Selected courts
            target_date: Date to book

        Returns:
            ``(start_hour, end_hour)`` or None if there is nothing to enumerate
        """
        weekday = day_of_week(target_date)
        ranges = []

        for court in courts:
            hours = operating_hours(court, weekday)
            if hours is None:
                logger.info(f"Court {court.id} is closed on {target_date} (day {weekday})")
                return None
            ranges.append(hours)

        if not ranges:
            return None

        # Intersection: latest start, earliest end
        start = max(r[0] for r in ranges)
        end = min(r[1] for r in ranges)
        if start >= end:
            logger.info(f"No common operating hours for courts {[c.id for c in courts]} on {target_date}")
            return None
        return start, end

    async def fetch_availabilities(
        self, courts: List[Court], target_date: date
    ) -> Dict[str, CourtAvailability]:
        """
        Fetch live availability for all courts concurrently.

        Waits for every response; any failure fails the whole fetch.

        Raises:
            httpx.HTTPError, ValueError: If any court's availability fails
        """
        results = await asyncio.gather(
            *[self.client.get_court_availability(court.id, target_date) for court in courts],
            return_exceptions=True,
        )

        availabilities = {}
        errors = []
        for court, result in zip(courts, results):
            if isinstance(result, BaseException):
                errors.append((court.id, result))
            else:
                availabilities[court.id] = result

        for court_id, error in errors:
            logger.warning(f"Availability fetch failed for court {court_id}: {error}")
        if errors:
            raise errors[0][1]

        return availabilities

    async def build_grid(self, courts: List[Court], target_date: date) -> SlotGrid:
        """
        Build the slot grid for a date and a set of courts.

        The grid is derived from scratch on every call.

        Args:
            courts: Selected courts (at least one for a non-empty grid)
            target_date: Date to book

        Returns:
            SlotGrid; empty with ``closed=True`` when any court is closed or
            the courts share no operating hours
        """
        now = self.clock.now()
        court_ids = [court.id for court in courts]

        if not courts:
            return SlotGrid(date=target_date, court_ids=[], generated_at=now)

        hours = self.common_operating_hours(courts, target_date)
        if hours is None:
            return SlotGrid(date=target_date, court_ids=court_ids, closed=True, generated_at=now)

        try:
            availabilities = await self.fetch_availabilities(courts, target_date)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                f"Live availability unavailable for {court_ids} on {target_date}, "
                f"using degraded grid: {e}"
            )
            return self._degraded_grid(courts, target_date, hours, now)

        day_type = day_type_for(target_date)
        slots = []

        for hour in range(hours[0], hours[1]):
            start, end = slot_bounds(hour)
            all_available = True
            holds: List[Hold] = []
            court_prices: Dict[str, float] = {}

            for court in courts:
                availability = availabilities[court.id]
                live_slot = find_time_slot(availability, start, end)

                if live_slot is None or not live_slot.is_available:
                    all_available = False
                holds.extend(active_holds(availability, court.id, start, end, now))

                if live_slot is not None and live_slot.price and live_slot.price > 0:
                    court_prices[court.id] = live_slot.price
                else:
                    court_prices[court.id] = self.pricing.price_for(court, start, end, day_type)

            if is_past_slot(target_date, hour, now):
                status = SlotStatus.PAST
            elif holds:
                status = SlotStatus.HELD
            elif not all_available:
                status = SlotStatus.UNAVAILABLE
            else:
                status = SlotStatus.AVAILABLE

            slots.append(
                TimeSlot(
                    start=start,
                    end=end,
                    status=status,
                    price=sum(court_prices.values()),
                    court_prices=court_prices,
                    holds=holds,
                )
            )

        logger.info(
            f"Built grid for {court_ids} on {target_date}: {len(slots)} slots, "
            f"{sum(1 for s in slots if s.is_available)} available"
        )
        return SlotGrid(date=target_date, court_ids=court_ids, slots=slots, generated_at=now)

    def _degraded_grid(
        self,
        courts: List[Court],
        target_date: date,
        hours: Tuple[int, int],
        now: datetime,
    ) -> SlotGrid:
        """Grid with unknown availability and configured pricing."""
        day_type = day_type_for(target_date)
        slots = []

        for hour in range(hours[0], hours[1]):
            start, end = slot_bounds(hour)
            court_prices = {
                court.id: self.pricing.price_for(court, start, end, day_type) for court in courts
            }
            status = SlotStatus.PAST if is_past_slot(target_date, hour, now) else SlotStatus.UNKNOWN
            slots.append(
                TimeSlot(
                    start=start,
                    end=end,
                    status=status,
                    price=sum(court_prices.values()),
                    court_prices=court_prices,
                )
            )

        return SlotGrid(
            date=target_date,
            court_ids=[court.id for court in courts],
            slots=slots,
            degraded=True,
            generated_at=now,
        )
