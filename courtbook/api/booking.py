"""Booking session endpoints."""
import logging
from fastapi import APIRouter, Depends, HTTPException
import httpx

from courtbook.core.clock import Clock, system_clock
from courtbook.core.exceptions import (
    BookingValidationError,
    ReservationInProgressError,
    SessionNotFoundError,
)
from courtbook.schemas.booking import RecoveryPayload, ReservationOutcome
from courtbook.schemas.session import (
    CourtOptionView,
    CourtSelection,
    DateSelection,
    SessionCreate,
    SessionView,
)
from courtbook.services.backend_client import BookingBackendClient, backend_client
from courtbook.services.booking_session import BookingSession, SessionRegistry, session_registry
from courtbook.services.recovery_store import RecoveryStore, recovery_store
from courtbook.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["booking"])


def get_backend_client() -> BookingBackendClient:
    return backend_client


def get_recovery_store() -> RecoveryStore:
    return recovery_store


def get_clock() -> Clock:
    return system_clock


def get_registry() -> SessionRegistry:
    return session_registry


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> BookingSession:
    try:
        return registry.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def session_view(session: BookingSession) -> SessionView:
    """Build the API view of a booking session."""
    return SessionView(
        id=session.id,
        seed_court_id=session.seed.id,
        venue_id=session.venue_id,
        venue_name=session.venue_name,
        sport_type=session.seed.sport_type,
        warning=session.warning,
        courts=[
            CourtOptionView(id=option.id, name=option.court.name, label=option.label)
            for option in session.courts
        ],
        selected_court_ids=session.selected_court_ids,
        selected_date=session.selected_date,
        selected_slots=session.selected_slots,
        grid=session.grid,
        total_price=session.total_price,
        state=session.state,
        conflicts=session.conflicts,
        owner=session.owner,
        loading=session.loading,
        last_error=session.last_error,
        handoff=session.handoff,
    )


def _raise_http(e: Exception):
    if isinstance(e, ReservationInProgressError):
        raise HTTPException(status_code=409, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


@router.post("/booking-sessions", response_model=SessionView, status_code=201)
async def create_session(
    payload: SessionCreate,
    client: BookingBackendClient = Depends(get_backend_client),
    store: RecoveryStore = Depends(get_recovery_store),
    clock: Clock = Depends(get_clock),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Open a booking session for a court.

    Loads the court, resolves its sibling courts at the same venue, and
    returns the session with no court or slot selected.

    Args:
        payload: Seed court ID and owner

    Returns:
        Session view
    """
    try:
        seed = await client.get_court(payload.court_id)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Court {payload.court_id} not found")
        raise HTTPException(status_code=502, detail=f"Failed to load court: {str(e)}")
    except (httpx.HTTPError, ValueError) as e:
        raise HTTPException(status_code=502, detail=f"Failed to load court: {str(e)}")

    session = BookingSession(seed, client=client, store=store, clock=clock, owner=payload.owner)
    await session.load_courts()
    registry.add(session)

    logger.info(f"Opened booking session {session.id} for court {seed.id} ({len(session.courts)} courts)")
    return session_view(session)


@router.get("/booking-sessions/{session_id}", response_model=SessionView)
async def read_session(session: BookingSession = Depends(get_session)):
    """Get a booking session's current state."""
    return session_view(session)


@router.put("/booking-sessions/{session_id}/courts", response_model=SessionView)
async def select_courts(selection: CourtSelection, session: BookingSession = Depends(get_session)):
    """
    Replace the selected courts and recompute the slot grid.

    Clears the slot selection.
    """
    try:
        session.select_courts(selection.court_ids)
    except (BookingValidationError, ReservationInProgressError) as e:
        _raise_http(e)

    await session.refresh_grid()
    return session_view(session)


@router.put("/booking-sessions/{session_id}/date", response_model=SessionView)
async def select_date(selection: DateSelection, session: BookingSession = Depends(get_session)):
    """
    Change the booking date and recompute the slot grid.

    Clears the slot selection.
    """
    try:
        session.set_date(selection.date)
    except (BookingValidationError, ReservationInProgressError) as e:
        _raise_http(e)

    await session.refresh_grid()
    return session_view(session)


@router.post("/booking-sessions/{session_id}/slots/{slot_key}/toggle", response_model=SessionView)
async def toggle_slot(slot_key: str, session: BookingSession = Depends(get_session)):
    """Select or deselect a time slot ("HH:MM-HH:MM")."""
    try:
        session.toggle_slot(slot_key)
    except (BookingValidationError, ReservationInProgressError) as e:
        _raise_http(e)
    return session_view(session)


@router.post("/booking-sessions/{session_id}/refresh", response_model=SessionView)
async def refresh_session(session: BookingSession = Depends(get_session)):
    """Recompute the slot grid and drop selected slots that became unavailable."""
    await session.refresh_grid()
    return session_view(session)


@router.post("/booking-sessions/{session_id}/submit", response_model=ReservationOutcome)
async def submit_session(session: BookingSession = Depends(get_session)):
    """
    Check the selection against the backend and request a short-term hold.

    On conflict the conflicting slots are removed from the selection and
    reported; on success the outcome carries the hand-off payload.

    Returns:
        Reservation outcome
    """
    try:
        return await session.submit()
    except (BookingValidationError, ReservationInProgressError) as e:
        _raise_http(e)


@router.post("/booking-sessions/{session_id}/release", response_model=SessionView)
async def release_hold(session: BookingSession = Depends(get_session)):
    """Release the hold granted to this session."""
    try:
        await session.release()
    except BookingValidationError as e:
        _raise_http(e)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Failed to release hold: {str(e)}")
    return session_view(session)


@router.delete("/booking-sessions/{session_id}", status_code=204)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Close a booking session."""
    registry.remove(session_id)


@router.get("/recovery/{owner}", response_model=RecoveryPayload, response_model_by_alias=True)
async def read_recovery(
    owner: str,
    client: BookingBackendClient = Depends(get_backend_client),
    store: RecoveryStore = Depends(get_recovery_store),
    clock: Clock = Depends(get_clock),
):
    """
    Get the pending hand-off for an owner.

    Returns the recovery record only while its hold is live.
    """
    reservations = ReservationService(client=client, store=store, clock=clock)
    payload = await reservations.resume(owner)
    if payload is None:
        raise HTTPException(status_code=404, detail="No pending booking hold")
    return payload
