"""Booking session: selection state and reservation flow for one booking dialog."""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from courtbook.core.clock import Clock, system_clock
from courtbook.core.config import settings
from courtbook.core.exceptions import (
    BookingValidationError,
    ReservationInProgressError,
    SessionNotFoundError,
)
from courtbook.schemas.availability import SlotConflict, SlotGrid
from courtbook.schemas.booking import (
    HOLDING_STATES,
    IN_FLIGHT_STATES,
    HandoffPayload,
    ReservationOutcome,
    ReservationRequest,
    ReservationState,
)
from courtbook.schemas.court import Court, CourtOption
from courtbook.services.availability_service import AvailabilityService
from courtbook.services.backend_client import BookingBackendClient, backend_client
from courtbook.services.court_resolver import CourtResolver
from courtbook.services.hold_reconciler import HoldReconciler
from courtbook.services.recovery_store import RecoveryStore, recovery_store
from courtbook.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

SelectionToken = Tuple[Optional[date], Tuple[str, ...]]


class BookingSession:
    """
    State of one booking dialog.

    Changing the court set or the date clears the slot selection. Grid
    recomputations are keyed by a ``(date, sorted court ids)`` token; a
    result whose token no longer matches the current selection is dropped.
    """

    def __init__(
        self,
        seed: Court,
        client: Optional[BookingBackendClient] = None,
        store: Optional[RecoveryStore] = None,
        clock: Optional[Clock] = None,
        owner: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.seed = seed
        # Recovery records are keyed by owner; anonymous dialogs get their own key
        self.owner = owner or self.id
        self.clock = clock or system_clock

        client = client or backend_client
        self.resolver = CourtResolver(client)
        self.availability = AvailabilityService(client=client, clock=self.clock)
        self.reconciler = HoldReconciler(self.clock)
        self.reservations = ReservationService(
            client=client,
            store=store or recovery_store,
            clock=self.clock,
            reconciler=self.reconciler,
        )

        self.courts: List[CourtOption] = []
        self.venue_name: Optional[str] = None
        self.warning: Optional[str] = None
        self.selected_court_ids: List[str] = []
        self.selected_date: Optional[date] = self.clock.today() + timedelta(days=1)
        self.selected_slots: List[str] = []
        self.grid: Optional[SlotGrid] = None
        self.conflicts: List[SlotConflict] = []
        self.state = ReservationState.IDLE
        self.handoff: Optional[HandoffPayload] = None
        self.last_error: Optional[str] = None
        self._pending = 0

    @property
    def loading(self) -> bool:
        """Whether a court lookup or grid computation is running."""
        return self._pending > 0

    @property
    def venue_id(self) -> str:
        return self.seed.venue_id

    @property
    def selection_token(self) -> SelectionToken:
        return self.selected_date, tuple(sorted(self.selected_court_ids))

    @property
    def selected_courts(self) -> List[CourtOption]:
        return [option for option in self.courts if option.id in self.selected_court_ids]

    @property
    def total_price(self) -> float:
        if self.grid is None:
            return 0
        total = 0
        for key in self.selected_slots:
            slot = self.grid.get(key)
            if slot is not None:
                total += slot.price
        return total

    def _ensure_idle(self) -> None:
        if self.state in IN_FLIGHT_STATES:
            raise ReservationInProgressError("A reservation is already in progress")
        if self.state in HOLDING_STATES:
            raise ReservationInProgressError("This session already holds a booking; release it first")

    def _reset_selection(self) -> None:
        self.selected_slots = []
        self.conflicts = []
        self.grid = None

    async def load_courts(self) -> List[CourtOption]:
        """Resolve the courts that can be booked together with the seed."""
        self._pending += 1
        try:
            resolved = await self.resolver.resolve(self.seed)
        finally:
            self._pending -= 1

        self.courts = resolved.courts
        self.venue_name = resolved.venue_name
        self.warning = resolved.warning
        self.selected_court_ids = []
        self._reset_selection()
        return self.courts

    def select_courts(self, court_ids: List[str]) -> None:
        """
        Replace the selected court set.

        Raises:
            BookingValidationError: If a court is not a resolved candidate
        """
        self._ensure_idle()
        known = {option.id for option in self.courts}
        unknown = [court_id for court_id in court_ids if court_id not in known]
        if unknown:
            raise BookingValidationError(f"Unknown courts: {', '.join(unknown)}")

        self.selected_court_ids = list(dict.fromkeys(court_ids))
        self._reset_selection()

    def set_date(self, target_date: date) -> None:
        """
        Change the booking date.

        Raises:
            BookingValidationError: If the date is in the past
        """
        self._ensure_idle()
        if target_date < self.clock.today():
            raise BookingValidationError("Please choose today or a later date")

        self.selected_date = target_date
        self._reset_selection()

    def toggle_slot(self, slot_key: str) -> List[str]:
        """
        Select or deselect a slot.

        Raises:
            BookingValidationError: If the slot cannot be selected
        """
        self._ensure_idle()
        if slot_key in self.selected_slots:
            self.selected_slots = [key for key in self.selected_slots if key != slot_key]
            return self.selected_slots

        slot = self.grid.get(slot_key) if self.grid else None
        if slot is None or not slot.is_selectable:
            raise BookingValidationError(f"Time slot {slot_key} is not available")

        self.selected_slots = self.selected_slots + [slot_key]
        return self.selected_slots

    async def refresh_grid(self) -> Optional[SlotGrid]:
        """
        Recompute the slot grid for the current date and courts.

        While idle, the selection is reconciled against the new grid and
        conflicted keys are dropped without blocking.

        Returns:
            The new grid, or None if the selection changed while computing
        """
        token = self.selection_token
        target_date, _ = token
        if target_date is None:
            return None

        courts = [option.court for option in self.selected_courts]
        self._pending += 1
        try:
            grid = await self.availability.build_grid(courts, target_date)
        finally:
            self._pending -= 1

        if token != self.selection_token:
            logger.debug(f"Discarding stale grid for {token}, current selection is {self.selection_token}")
            return None

        self.grid = grid
        if self.state != ReservationState.IDLE:
            # The selection belongs to a submitted attempt
            return grid

        result = self.reconciler.reconcile(self.selected_slots, grid)
        if result.has_conflicts:
            logger.info(f"Session {self.id}: dropping unavailable slots {result.conflicted_keys}")
            self.selected_slots = result.valid
        return grid

    def _validate_submission(self) -> None:
        if self.selected_date is None or not self.selected_slots:
            raise BookingValidationError("Please choose a date and at least one time slot")
        if not self.selected_court_ids:
            raise BookingValidationError("Please choose at least one court")

    def _set_state(self, state: ReservationState) -> None:
        self.state = state

    async def submit(self) -> ReservationOutcome:
        """
        Run the last-mile check and request a hold for the selection.

        Raises:
            ReservationInProgressError: If an attempt is already in flight
            BookingValidationError: If the selection is incomplete
        """
        self._ensure_idle()
        self._validate_submission()

        slot_prices = {}
        if self.grid is not None:
            for key in self.selected_slots:
                slot = self.grid.get(key)
                if slot is not None:
                    slot_prices[key] = slot.price

        request = ReservationRequest(
            venue_id=self.venue_id,
            courts=self.selected_courts,
            date=self.selected_date,
            slot_keys=list(self.selected_slots),
            slot_prices=slot_prices,
            owner=self.owner,
        )

        self.last_error = None
        self.conflicts = []
        try:
            outcome = await self.reservations.reserve(request, on_state=self._set_state)
        except Exception:
            self.state = ReservationState.IDLE
            raise

        if outcome.state == ReservationState.CONFLICT:
            self.selected_slots = outcome.remaining_selection
            self.conflicts = outcome.conflicts
            self.state = ReservationState.IDLE
            await self.refresh_grid()
        elif outcome.state == ReservationState.HOLD_DENIED:
            self.last_error = outcome.error
            self.state = ReservationState.IDLE
            await self.refresh_grid()
        else:
            self.handoff = outcome.handoff

        return outcome

    async def release(self) -> None:
        """Release the hold granted by this session, if any."""
        if self.handoff is None or not self.handoff.booking_id:
            raise BookingValidationError("This session holds no booking")

        await self.reservations.release(self.handoff.booking_id, self.owner)
        self.handoff = None
        self.state = ReservationState.IDLE


class SessionRegistry:
    """
    In-memory registry of open booking sessions.

    Every lookup refreshes a session's last-access time; sessions left
    untouched for longer than the idle timeout are evicted by
    ``evict_idle``.
    """

    def __init__(self, clock: Optional[Clock] = None, idle_minutes: Optional[int] = None):
        self.clock = clock or system_clock
        self.idle_timeout = timedelta(minutes=idle_minutes or settings.SESSION_IDLE_MINUTES)
        self._sessions: Dict[str, BookingSession] = {}
        self._last_seen: Dict[str, datetime] = {}

    def add(self, session: BookingSession) -> BookingSession:
        self._sessions[session.id] = session
        self._last_seen[session.id] = self.clock.now()
        return session

    def get(self, session_id: str) -> BookingSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Booking session {session_id} not found") from None

        self._last_seen[session_id] = self.clock.now()
        return session

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """
        Drop sessions not accessed within the idle timeout.

        Sessions with a reservation in flight are kept.

        Returns:
            Number of sessions evicted
        """
        now = now or self.clock.now()
        cutoff = now - self.idle_timeout
        stale = [
            session_id
            for session_id, seen in self._last_seen.items()
            if seen <= cutoff and self._sessions[session_id].state not in IN_FLIGHT_STATES
        ]
        for session_id in stale:
            self.remove(session_id)

        if stale:
            logger.info(f"Evicted {len(stale)} idle booking sessions")
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)


# Singleton instance
session_registry = SessionRegistry()
