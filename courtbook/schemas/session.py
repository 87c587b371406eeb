"""Booking session API schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import date

from courtbook.schemas.availability import SlotConflict, SlotGrid
from courtbook.schemas.booking import HandoffPayload, ReservationState


class SessionCreate(BaseModel):
    """Schema for opening a booking session on a court."""

    model_config = ConfigDict(populate_by_name=True)

    court_id: str = Field(alias="courtId")
    owner: Optional[str] = None  # defaults to the session id


class CourtSelection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    court_ids: List[str] = Field(alias="courtIds")


class DateSelection(BaseModel):
    date: date


class CourtOptionView(BaseModel):
    id: str
    name: str
    label: str


class SessionView(BaseModel):
    """Schema for a booking session's current state."""

    id: str
    seed_court_id: str
    venue_id: str
    venue_name: Optional[str] = None
    sport_type: str
    warning: Optional[str] = None
    courts: List[CourtOptionView]
    selected_court_ids: List[str]
    selected_date: Optional[date] = None
    selected_slots: List[str]
    grid: Optional[SlotGrid] = None
    total_price: float
    state: ReservationState
    conflicts: List[SlotConflict] = Field(default_factory=list)
    owner: str
    loading: bool = False
    last_error: Optional[str] = None
    handoff: Optional[HandoffPayload] = None
