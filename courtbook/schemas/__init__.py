"""API schemas."""
from courtbook.schemas.court import (
    VenueRef,
    normalize_venue_ref,
    TimeWindow,
    DayAvailability,
    PricingRule,
    Court,
    CourtOption,
    ResolvedCourts,
)
from courtbook.schemas.availability import (
    CourtTimeSlot,
    HeldSlot,
    CourtAvailability,
    Hold,
    SlotStatus,
    TimeSlot,
    SlotGrid,
    SlotConflict,
    ReconciliationResult,
)
from courtbook.schemas.booking import (
    DraftSlot,
    BookingDraft,
    HoldRequest,
    HoldResult,
    decode_hold_response,
    HandoffPayload,
    RecoveryPayload,
    ReservationState,
    ReservationRequest,
    ReservationOutcome,
)

__all__ = [
    "VenueRef",
    "normalize_venue_ref",
    "TimeWindow",
    "DayAvailability",
    "PricingRule",
    "Court",
    "CourtOption",
    "ResolvedCourts",
    "CourtTimeSlot",
    "HeldSlot",
    "CourtAvailability",
    "Hold",
    "SlotStatus",
    "TimeSlot",
    "SlotGrid",
    "SlotConflict",
    "ReconciliationResult",
    "DraftSlot",
    "BookingDraft",
    "HoldRequest",
    "HoldResult",
    "decode_hold_response",
    "HandoffPayload",
    "RecoveryPayload",
    "ReservationState",
    "ReservationRequest",
    "ReservationOutcome",
]
