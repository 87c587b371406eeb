"""Court and venue schemas."""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional


class VenueRef(BaseModel):
    """Normalized venue reference."""

    id: str
    name: Optional[str] = None


def normalize_venue_ref(value: Any) -> VenueRef:
    """
    Normalize a venue reference.

    The backend sends the venue either as a raw id or as an embedded
    venue document carrying ``_id`` or ``id``.

    Args:
        value: Raw id, embedded venue dict, or VenueRef

    Returns:
        VenueRef with a string id

    Raises:
        ValueError: If no id can be extracted
    """
    if isinstance(value, VenueRef):
        return value
    if isinstance(value, dict):
        venue_id = value.get("_id") or value.get("id")
        if not venue_id:
            raise ValueError(f"Venue object without id: {value!r}")
        return VenueRef(id=str(venue_id), name=value.get("name"))
    if value is None or value == "":
        raise ValueError("Missing venue reference")
    return VenueRef(id=str(value))


class TimeWindow(BaseModel):
    """A configured opening window on a weekday."""

    model_config = ConfigDict(populate_by_name=True)

    start: str
    end: str
    is_available: bool = Field(default=True, alias="isAvailable")


class DayAvailability(BaseModel):
    """Default availability for one weekday (0 = Sunday ... 6 = Saturday)."""

    model_config = ConfigDict(populate_by_name=True)

    day_of_week: int = Field(alias="dayOfWeek", ge=0, le=6)
    time_slots: List[TimeWindow] = Field(default_factory=list, alias="timeSlots")


class PricingWindow(BaseModel):
    start: str = ""
    end: str = ""


class PricingRule(BaseModel):
    """Hourly rate for a time window and day type. Fields may be missing."""

    model_config = ConfigDict(populate_by_name=True)

    time_slot: Optional[PricingWindow] = Field(default=None, alias="timeSlot")
    day_type: Optional[str] = Field(default=None, alias="dayType")  # weekday, weekend
    price_per_hour: Optional[float] = Field(default=None, alias="pricePerHour")
    is_active: bool = Field(default=True, alias="isActive")


class Court(BaseModel):
    """Court record as returned by the booking backend."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    venue: VenueRef = Field(validation_alias=AliasChoices("venueId", "venue"))
    sport_type: str = Field(validation_alias=AliasChoices("sportType", "sport_type"))
    capacity: Optional[int] = None
    court_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("courtType", "court_type")
    )
    is_active: bool = Field(
        default=True, validation_alias=AliasChoices("isActive", "is_active")
    )
    default_availability: List[DayAvailability] = Field(
        default_factory=list,
        validation_alias=AliasChoices("defaultAvailability", "default_availability"),
    )
    pricing: List[PricingRule] = Field(default_factory=list)

    @field_validator("venue", mode="before")
    @classmethod
    def _normalize_venue(cls, value: Any) -> VenueRef:
        return normalize_venue_ref(value)

    @property
    def venue_id(self) -> str:
        return self.venue.id

    def day_availability(self, day_of_week: int) -> Optional[DayAvailability]:
        """Return the default availability entry for a weekday, if configured."""
        for entry in self.default_availability:
            if entry.day_of_week == day_of_week:
                return entry
        return None


class CourtOption(BaseModel):
    """A court eligible for joint selection, with its display label."""

    court: Court
    label: str

    @property
    def id(self) -> str:
        return self.court.id

    @property
    def display_name(self) -> str:
        return f"{self.label} ({self.court.name})"


class ResolvedCourts(BaseModel):
    """Result of resolving sibling courts for a seed court."""

    courts: List[CourtOption]
    venue_name: Optional[str] = None
    warning: Optional[str] = None
