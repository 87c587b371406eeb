"""Hold reconciler: keeps a slot selection consistent with server state."""
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from courtbook.core.clock import Clock, system_clock
from courtbook.core.config import settings
from courtbook.schemas.availability import (
    CourtAvailability,
    Hold,
    ReconciliationResult,
    SlotConflict,
    SlotGrid,
    SlotStatus,
)
from courtbook.services.availability_service import active_holds, find_time_slot, is_past_slot
from courtbook.services.pricing import parse_minutes

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "unavailable"
PAST_REASON = "past"
MISSING_REASON = "missing"


def split_slot_key(slot_key: str) -> Tuple[str, str]:
    """Split "HH:MM-HH:MM" into its start and end."""
    start, _, end = slot_key.partition("-")
    return start, end


class HoldReconciler:
    """Partitions a selection into still-valid and conflicted slot keys."""

    def __init__(self, clock: Optional[Clock] = None, unavailable_hold_minutes: Optional[int] = None):
        self.clock = clock or system_clock
        self.unavailable_hold = timedelta(
            minutes=unavailable_hold_minutes or settings.UNAVAILABLE_HOLD_MINUTES
        )

    def _synthetic_hold(self, start: str, end: str, reason: str, court_id: Optional[str] = None) -> Hold:
        """Hold standing in for an unavailable slot so it renders like a real one."""
        return Hold(
            court_id=court_id,
            start=start,
            end=end,
            hold_until=self.clock.now() + self.unavailable_hold,
            reason=reason,
        )

    def reconcile(self, selection: List[str], grid: SlotGrid) -> ReconciliationResult:
        """
        Check a selection against a freshly computed grid.

        A key conflicts when its slot carries an active hold, is unavailable
        or past, or no longer exists in the grid. Slots of unknown
        availability stay valid.

        Args:
            selection: Selected slot keys
            grid: Current slot grid

        Returns:
            ReconciliationResult with valid keys in selection order
        """
        now = self.clock.now()
        result = ReconciliationResult()

        for key in selection:
            slot = grid.get(key)
            if slot is None:
                start, end = split_slot_key(key)
                result.conflicts.append(
                    SlotConflict(
                        slot_key=key,
                        start=start,
                        end=end,
                        holds=[self._synthetic_hold(start, end, MISSING_REASON)],
                    )
                )
                continue

            live_holds = [hold for hold in slot.holds if hold.is_active(now)]
            if live_holds:
                result.conflicts.append(
                    SlotConflict(slot_key=key, start=slot.start, end=slot.end, holds=live_holds)
                )
            elif slot.status in (SlotStatus.UNAVAILABLE, SlotStatus.PAST):
                reason = PAST_REASON if slot.status == SlotStatus.PAST else UNAVAILABLE_REASON
                result.conflicts.append(
                    SlotConflict(
                        slot_key=key,
                        start=slot.start,
                        end=slot.end,
                        holds=[self._synthetic_hold(slot.start, slot.end, reason)],
                    )
                )
            else:
                result.valid.append(key)

        if result.has_conflicts:
            logger.info(f"Selection conflicts with grid: {result.conflicted_keys}")
        return result

    def check_fresh(
        self,
        selection: List[str],
        court_ids: List[str],
        availabilities: Dict[str, CourtAvailability],
        target_date: date,
    ) -> List[SlotConflict]:
        """
        Check a selection against freshly fetched per-court availability.

        For every selected slot and every court, an active overlapping hold
        or an explicit ``isAvailable: false`` is a conflict. All hits are
        reported; one is enough to conflict the slot.

        Args:
            selection: Selected slot keys
            court_ids: Selected court IDs
            availabilities: Fresh availability keyed by court ID
            target_date: Booking date

        Returns:
            Conflicts in selection order
        """
        now = self.clock.now()
        conflicts = []

        for key in selection:
            start, end = split_slot_key(key)
            holds: List[Hold] = []

            start_minutes = parse_minutes(start)
            if start_minutes is not None and is_past_slot(target_date, start_minutes // 60, now):
                holds.append(self._synthetic_hold(start, end, PAST_REASON))

            for court_id in court_ids:
                availability = availabilities.get(court_id)
                if availability is None:
                    continue
                court_holds = active_holds(availability, court_id, start, end, now)
                holds.extend(court_holds)

                live_slot = find_time_slot(availability, start, end)
                if not court_holds and live_slot is not None and not live_slot.is_available:
                    holds.append(self._synthetic_hold(start, end, UNAVAILABLE_REASON, court_id))

            if holds:
                conflicts.append(SlotConflict(slot_key=key, start=start, end=end, holds=holds))

        if conflicts:
            logger.warning(f"Server-side conflicts on {[c.slot_key for c in conflicts]}")
        return conflicts
