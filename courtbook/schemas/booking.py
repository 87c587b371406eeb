"""Booking draft, hold and reservation schemas."""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime

from courtbook.schemas.availability import SlotConflict
from courtbook.schemas.court import CourtOption


class DraftSlot(BaseModel):
    start: str
    end: str
    price: float


class BookingDraft(BaseModel):
    """Booking data handed to the booking/payment flow."""

    model_config = ConfigDict(populate_by_name=True)

    court_ids: List[str] = Field(alias="courtIds")
    court_names: str = Field(alias="courtNames")
    date: str
    time_slots: List[DraftSlot] = Field(alias="timeSlots")
    court_quantity: int = Field(alias="courtQuantity")
    total_price: float = Field(alias="totalPrice")
    venue: str


class HoldSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    price: float


class HoldRequest(BaseModel):
    """Body of the short-term hold request."""

    model_config = ConfigDict(populate_by_name=True)

    venue_id: str = Field(alias="venueId")
    court_ids: List[str] = Field(alias="courtIds")
    date: str
    time_slots: List[HoldSlot] = Field(alias="timeSlots")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class HoldResult(BaseModel):
    """Decoded hold response."""

    success: bool
    booking_id: Optional[str] = None
    message: Optional[str] = None


def decode_hold_response(body: Any) -> HoldResult:
    """
    Decode a hold response.

    Only an explicit ``success: false`` is a failure. A body without a
    ``success`` key, including ``{}``, is a granted hold.

    Args:
        body: Parsed JSON response body

    Returns:
        HoldResult
    """
    if not isinstance(body, dict):
        return HoldResult(success=True)

    message = body.get("message")
    if body.get("success") is False:
        return HoldResult(success=False, message=message or "Hold request was rejected")

    data = body.get("data")
    booking_id = None
    if isinstance(data, dict):
        booking_id = data.get("bookingId") or data.get("_id")

    return HoldResult(
        success=True,
        booking_id=str(booking_id) if booking_id else None,
        message=message,
    )


class HandoffPayload(BaseModel):
    """Navigation payload for the booking/payment flow."""

    model_config = ConfigDict(populate_by_name=True)

    booking_data: BookingDraft = Field(alias="bookingData")
    booking_id: Optional[str] = Field(default=None, alias="bookingId")
    hold_until: datetime = Field(alias="holdUntil")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RecoveryPayload(BaseModel):
    """Recovery blob persisted while a hold is live."""

    model_config = ConfigDict(populate_by_name=True)

    booking_data: BookingDraft = Field(alias="bookingData")
    booking_id: Optional[str] = Field(default=None, alias="bookingId")
    hold_until: datetime = Field(alias="holdUntil")
    timestamp: datetime


class ReservationState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    CONFLICT = "conflict"
    HOLDING = "holding"
    HOLD_GRANTED = "hold_granted"
    HOLD_DENIED = "hold_denied"
    HANDED_OFF = "handed_off"


IN_FLIGHT_STATES = (ReservationState.CHECKING, ReservationState.HOLDING)
# A granted hold stays with the session until it is released
HOLDING_STATES = (ReservationState.HOLD_GRANTED, ReservationState.HANDED_OFF)


class ReservationRequest(BaseModel):
    """Everything the initiator needs for one reservation attempt."""

    venue_id: str
    courts: List[CourtOption]
    date: date
    slot_keys: List[str]
    slot_prices: Dict[str, float]
    owner: str = "anonymous"

    @property
    def court_ids(self) -> List[str]:
        return [option.id for option in self.courts]


class ReservationOutcome(BaseModel):
    """Result of one reservation attempt."""

    state: ReservationState
    conflicts: List[SlotConflict] = Field(default_factory=list)
    remaining_selection: List[str] = Field(default_factory=list)
    handoff: Optional[HandoffPayload] = None
    error: Optional[str] = None
