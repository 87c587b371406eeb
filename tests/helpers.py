"""Shared fakes and builders for tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import httpx
import pytz

from courtbook.core.clock import Clock
from courtbook.schemas.availability import CourtAvailability
from courtbook.schemas.court import Court

TZ = pytz.timezone("Asia/Ho_Chi_Minh")

# Monday 2026-10-19, 10:30 venue time
NOW = TZ.localize(datetime(2026, 10, 19, 10, 30))
TODAY = NOW.date()
WEEKDAY = date(2026, 10, 20)  # Tuesday
WEEKEND = date(2026, 10, 24)  # Saturday


def fixed_clock(now: datetime = NOW) -> Clock:
    return Clock(timezone="Asia/Ho_Chi_Minh", now_provider=lambda: now)


class MutableClock(Clock):
    """Clock whose time can be moved by tests."""

    def __init__(self, now: datetime = NOW):
        super().__init__(timezone="Asia/Ho_Chi_Minh", now_provider=lambda: self.current)
        self.current = now

    def advance(self, **kwargs: Any) -> None:
        self.current = self.current + timedelta(**kwargs)


def court_data(
    court_id: str,
    name: Optional[str] = None,
    venue: Any = "V1",
    sport: str = "football",
    hours: tuple = (6, 22),
    closed_days: Iterable[int] = (),
    pricing: Optional[List[Dict[str, Any]]] = None,
    active: bool = True,
) -> Dict[str, Any]:
    """Court record in the backend's camelCase shape."""
    closed = set(closed_days)
    return {
        "_id": court_id,
        "name": name or f"Court {court_id}",
        "venueId": venue,
        "sportType": sport,
        "capacity": 10,
        "courtType": "outdoor",
        "isActive": active,
        "defaultAvailability": [
            {
                "dayOfWeek": day,
                "timeSlots": [
                    {
                        "start": f"{hours[0]:02d}:00",
                        "end": f"{hours[1]:02d}:00",
                        "isAvailable": day not in closed,
                    }
                ],
            }
            for day in range(7)
        ],
        "pricing": pricing if pricing is not None else [],
    }


def make_court(court_id: str, **kwargs: Any) -> Court:
    return Court.model_validate(court_data(court_id, **kwargs))


def availability_data(
    court_id: str,
    target_date: date,
    hours: Iterable[int] = range(6, 22),
    unavailable: Iterable[int] = (),
    held: Optional[Dict[int, tuple]] = None,
    prices: Optional[Dict[int, float]] = None,
) -> Dict[str, Any]:
    """Live availability body. ``held`` maps hour -> (hold_until, booking_id)."""
    blocked = set(unavailable)
    prices = prices or {}
    slots = []
    for hour in hours:
        slot = {
            "start": f"{hour:02d}:00",
            "end": f"{hour + 1:02d}:00",
            "isAvailable": hour not in blocked,
        }
        if hour in prices:
            slot["price"] = prices[hour]
        slots.append(slot)

    held_slots = []
    for hour, (hold_until, booking_id) in (held or {}).items():
        held_slots.append(
            {
                "start": f"{hour:02d}:00",
                "end": f"{hour + 1:02d}:00",
                "holdUntil": hold_until.isoformat(),
                "bookingId": booking_id,
            }
        )

    return {
        "courtId": court_id,
        "date": target_date.strftime("%Y-%m-%d"),
        "timeSlots": slots,
        "heldSlots": held_slots,
    }


class FakeBackend:
    """In-memory stand-in for BookingBackendClient."""

    def __init__(
        self,
        courts: Optional[List[Dict[str, Any]]] = None,
        availability: Optional[Dict[str, Any]] = None,
        hold_response: Any = None,
        venue_error: Optional[Exception] = None,
        sport_error: Optional[Exception] = None,
    ):
        self.courts = courts or []
        self.availability = availability or {}
        self.hold_response = {} if hold_response is None else hold_response
        self.venue_error = venue_error
        self.sport_error = sport_error
        self.availability_calls: List[tuple] = []
        self.hold_requests: List[Any] = []
        self.released: List[str] = []

    async def get_court(self, court_id: str) -> Court:
        for item in self.courts:
            if item["_id"] == court_id:
                return Court.model_validate(item)
        request = httpx.Request("GET", f"http://backend/api/v1/courts/{court_id}")
        raise httpx.HTTPStatusError(
            "not found", request=request, response=httpx.Response(404, request=request)
        )

    async def get_courts_by_venue(self, venue_id: str) -> List[Court]:
        if self.venue_error:
            raise self.venue_error
        return [Court.model_validate(item) for item in self.courts]

    async def get_courts_by_sport(self, sport_type: str, venue_id: Optional[str] = None) -> List[Court]:
        if self.sport_error:
            raise self.sport_error
        return [Court.model_validate(item) for item in self.courts if item["sportType"] == sport_type]

    async def get_venue(self, venue_id: str) -> Dict[str, Any]:
        return {"_id": venue_id, "name": "Riverside Sports"}

    async def get_court_availability(self, court_id: str, target_date: date) -> CourtAvailability:
        self.availability_calls.append((court_id, target_date))
        value = self.availability.get(court_id)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = await value()
        return CourtAvailability.model_validate(value or {"courtId": court_id})

    async def hold_booking(self, hold_request: Any) -> Any:
        self.hold_requests.append(hold_request)
        if isinstance(self.hold_response, Exception):
            raise self.hold_response
        return self.hold_response

    async def release_booking(self, booking_id: str) -> Any:
        self.released.append(booking_id)
        return {"success": True}


class FakeStore:
    """In-memory stand-in for RecoveryStore."""

    def __init__(self):
        self.records: Dict[str, Any] = {}

    async def save(self, owner: str, payload: Any) -> None:
        self.records[owner] = payload

    async def load(self, owner: str, now: datetime) -> Any:
        payload = self.records.get(owner)
        if payload is None or payload.hold_until <= now:
            return None
        return payload

    async def clear(self, owner: str) -> None:
        self.records.pop(owner, None)
