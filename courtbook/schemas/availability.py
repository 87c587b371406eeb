"""Availability schemas."""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime, date

import pytz


def _as_aware(value: datetime) -> datetime:
    """Treat naive timestamps from the backend as UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value


class CourtTimeSlot(BaseModel):
    """A single slot in a court's live availability."""

    model_config = ConfigDict(populate_by_name=True)

    start: str
    end: str
    is_available: bool = Field(default=False, alias="isAvailable")
    price: Optional[float] = None


class HeldSlot(BaseModel):
    """A hold reported by the backend on one of a court's slots."""

    model_config = ConfigDict(populate_by_name=True)

    start: str
    end: str
    hold_until: datetime = Field(alias="holdUntil")
    booking_id: Optional[str] = Field(default=None, alias="bookingId")

    @field_validator("hold_until")
    @classmethod
    def _hold_until_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)


class CourtAvailability(BaseModel):
    """Live availability of one court on one date."""

    model_config = ConfigDict(populate_by_name=True)

    court_id: Optional[str] = Field(default=None, alias="courtId")
    date: Optional[str] = None
    time_slots: List[CourtTimeSlot] = Field(default_factory=list, alias="timeSlots")
    held_slots: List[HeldSlot] = Field(default_factory=list, alias="heldSlots")


class Hold(BaseModel):
    """A transient lock on a (court, date, start, end) tuple."""

    model_config = ConfigDict(populate_by_name=True)

    court_id: Optional[str] = Field(default=None, alias="courtId")
    start: str
    end: str
    hold_until: datetime = Field(alias="holdUntil")
    booking_id: Optional[str] = Field(default=None, alias="bookingId")
    reason: Optional[str] = None  # "unavailable" for synthetic holds, "past"

    @field_validator("hold_until")
    @classmethod
    def _hold_until_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)

    def is_active(self, now: datetime) -> bool:
        """A hold is active iff it expires strictly after ``now``."""
        return self.hold_until > now


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    HELD = "held"
    PAST = "past"
    UNKNOWN = "unknown"  # live availability could not be fetched


class TimeSlot(BaseModel):
    """A computed one-hour cell of the slot grid."""

    start: str
    end: str
    status: SlotStatus
    price: float
    court_prices: Dict[str, float] = Field(default_factory=dict)
    holds: List[Hold] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.start}-{self.end}"

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    @property
    def is_selectable(self) -> bool:
        return self.status in (SlotStatus.AVAILABLE, SlotStatus.UNKNOWN)


class SlotGrid(BaseModel):
    """Unified slot grid for a date and a set of courts."""

    date: date
    court_ids: List[str]
    slots: List[TimeSlot] = Field(default_factory=list)
    closed: bool = False
    degraded: bool = False
    generated_at: datetime

    def get(self, key: str) -> Optional[TimeSlot]:
        for slot in self.slots:
            if slot.key == key:
                return slot
        return None


class SlotConflict(BaseModel):
    """A selected slot found to be held or unavailable."""

    slot_key: str
    start: str
    end: str
    holds: List[Hold] = Field(default_factory=list)

    @property
    def court_ids(self) -> List[str]:
        return [hold.court_id for hold in self.holds if hold.court_id]


class ReconciliationResult(BaseModel):
    """Selection partitioned into still-valid keys and conflicts."""

    valid: List[str] = Field(default_factory=list)
    conflicts: List[SlotConflict] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflicted_keys(self) -> List[str]:
        return [conflict.slot_key for conflict in self.conflicts]
