"""Reservation service: last-mile availability check and short-term hold."""
import logging
from datetime import timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from courtbook.core.clock import Clock, system_clock
from courtbook.core.config import settings
from courtbook.schemas.booking import (
    BookingDraft,
    DraftSlot,
    HandoffPayload,
    HoldRequest,
    HoldSlot,
    RecoveryPayload,
    ReservationOutcome,
    ReservationRequest,
    ReservationState,
    decode_hold_response,
)
from courtbook.services.availability_service import AvailabilityService
from courtbook.services.backend_client import BookingBackendClient, backend_client
from courtbook.services.hold_reconciler import HoldReconciler, split_slot_key
from courtbook.services.recovery_store import RecoveryStore, recovery_store

logger = logging.getLogger(__name__)

StateListener = Callable[[ReservationState], None]


def build_draft(request: ReservationRequest) -> BookingDraft:
    """Build the booking draft for a reservation request."""
    time_slots = []
    for key in request.slot_keys:
        start, end = split_slot_key(key)
        time_slots.append(DraftSlot(start=start, end=end, price=request.slot_prices.get(key, 0)))

    return BookingDraft(
        court_ids=request.court_ids,
        court_names=", ".join(option.display_name for option in request.courts),
        date=request.date.strftime("%Y-%m-%d"),
        time_slots=time_slots,
        court_quantity=len(request.courts),
        total_price=sum(slot.price for slot in time_slots),
        venue=request.venue_id,
    )


def build_hold_request(draft: BookingDraft) -> HoldRequest:
    return HoldRequest(
        venue_id=draft.venue,
        court_ids=draft.court_ids,
        date=draft.date,
        time_slots=[
            HoldSlot(start_time=slot.start, end_time=slot.end, price=slot.price)
            for slot in draft.time_slots
        ],
    )


class ReservationService:
    """
    Runs one reservation attempt.

    State machine for an attempt::

        idle -> checking -> conflict -> idle
                         -> holding -> hold_granted -> handed_off
                                    -> hold_denied -> idle

    There is no retry loop; retries are new attempts.
    """

    def __init__(
        self,
        client: Optional[BookingBackendClient] = None,
        store: Optional[RecoveryStore] = None,
        clock: Optional[Clock] = None,
        reconciler: Optional[HoldReconciler] = None,
        hold_minutes: Optional[int] = None,
    ):
        self.client = client or backend_client
        self.store = store or recovery_store
        self.clock = clock or system_clock
        self.reconciler = reconciler or HoldReconciler(self.clock)
        self.hold_duration = timedelta(minutes=hold_minutes or settings.HOLD_DURATION_MINUTES)
        self._availability = AvailabilityService(client=self.client, clock=self.clock)

    async def reserve(
        self,
        request: ReservationRequest,
        on_state: Optional[StateListener] = None,
    ) -> ReservationOutcome:
        """
        Check the selection against fresh server data and request a hold.

        Args:
            request: Reservation request
            on_state: Called on every state transition

        Returns:
            ReservationOutcome; CONFLICT with the pruned selection, HOLD_DENIED
            with an error, or HANDED_OFF with the hand-off payload
        """

        def transition(state: ReservationState) -> None:
            logger.debug(f"Reservation state -> {state.value}")
            if on_state is not None:
                on_state(state)

        transition(ReservationState.CHECKING)
        courts = [option.court for option in request.courts]

        # Re-fetch; the grid the user saw may be stale
        try:
            availabilities = await self._availability.fetch_availabilities(courts, request.date)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Pre-hold availability check failed: {e}")
            transition(ReservationState.HOLD_DENIED)
            return ReservationOutcome(
                state=ReservationState.HOLD_DENIED,
                remaining_selection=list(request.slot_keys),
                error=f"Could not verify availability: {e}",
            )

        conflicts = self.reconciler.check_fresh(
            request.slot_keys, request.court_ids, availabilities, request.date
        )
        if conflicts:
            conflicted = {conflict.slot_key for conflict in conflicts}
            remaining = [key for key in request.slot_keys if key not in conflicted]
            transition(ReservationState.CONFLICT)
            return ReservationOutcome(
                state=ReservationState.CONFLICT,
                conflicts=conflicts,
                remaining_selection=remaining,
            )

        draft = build_draft(request)
        transition(ReservationState.HOLDING)

        try:
            body = await self.client.hold_booking(build_hold_request(draft))
        except httpx.HTTPError as e:
            logger.error(f"Hold request failed: {e}")
            transition(ReservationState.HOLD_DENIED)
            return ReservationOutcome(
                state=ReservationState.HOLD_DENIED,
                remaining_selection=list(request.slot_keys),
                error=f"Hold request failed: {e}",
            )

        result = decode_hold_response(body)
        if not result.success:
            logger.warning(f"Hold denied: {result.message}")
            transition(ReservationState.HOLD_DENIED)
            return ReservationOutcome(
                state=ReservationState.HOLD_DENIED,
                remaining_selection=list(request.slot_keys),
                error=result.message,
            )

        now = self.clock.now()
        hold_until = now + self.hold_duration
        transition(ReservationState.HOLD_GRANTED)
        logger.info(f"Hold granted (booking {result.booking_id}) until {hold_until}")

        try:
            await self.store.save(
                request.owner,
                RecoveryPayload(
                    booking_data=draft,
                    booking_id=result.booking_id,
                    hold_until=hold_until,
                    timestamp=now,
                ),
            )
        except SQLAlchemyError as e:
            # The hold stands; only reload recovery is lost
            logger.error(f"Failed to persist recovery record for {request.owner}: {e}", exc_info=True)

        handoff = HandoffPayload(booking_data=draft, booking_id=result.booking_id, hold_until=hold_until)
        transition(ReservationState.HANDED_OFF)
        return ReservationOutcome(
            state=ReservationState.HANDED_OFF,
            remaining_selection=list(request.slot_keys),
            handoff=handoff,
        )

    async def release(self, booking_id: str, owner: str) -> None:
        """
        Release a held booking and forget its recovery record.

        Raises:
            httpx.HTTPError: If the backend rejects the release
        """
        await self.client.release_booking(booking_id)
        await self.store.clear(owner)
        logger.info(f"Released hold for booking {booking_id}")

    async def resume(self, owner: str) -> Optional[RecoveryPayload]:
        """Return the owner's pending hand-off while its hold is live."""
        return await self.store.load(owner, self.clock.now())
