"""Court resolver: finds the courts eligible for joint booking with a seed court."""
import logging
from typing import List, Optional

import httpx

from courtbook.core.config import settings
from courtbook.schemas.court import Court, CourtOption, ResolvedCourts, normalize_venue_ref
from courtbook.services.backend_client import BookingBackendClient, backend_client

logger = logging.getLogger(__name__)


def court_label(index: int, prefix: Optional[str] = None) -> str:
    """Display label for the court at ``index``: A..Z, then numbers."""
    prefix = prefix or settings.COURT_LABEL_PREFIX
    if index < 26:
        return f"{prefix} {chr(ord('A') + index)}"
    return f"{prefix} {index + 1}"


def is_sibling(candidate: Court, seed: Court) -> bool:
    """Same sport, same venue, and active."""
    if candidate.sport_type != seed.sport_type or not candidate.is_active:
        return False
    return normalize_venue_ref(candidate.venue).id == normalize_venue_ref(seed.venue).id


def label_courts(courts: List[Court]) -> List[CourtOption]:
    """Sort courts by name and assign display labels."""
    ordered = sorted(courts, key=lambda court: court.name.casefold())
    return [CourtOption(court=court, label=court_label(index)) for index, court in enumerate(ordered)]


class CourtResolver:
    """Resolves sibling courts at the seed court's venue."""

    def __init__(self, client: Optional[BookingBackendClient] = None):
        self.client = client or backend_client

    async def _lookup(self, seed: Court) -> List[Court]:
        """
        Look up candidate courts, by venue first and by sport second.

        Raises:
            httpx.HTTPError, ValueError: If both lookups fail
        """
        try:
            return await self.client.get_courts_by_venue(seed.venue_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Venue lookup failed for {seed.venue_id}, trying sport lookup: {e}")

        return await self.client.get_courts_by_sport(seed.sport_type, venue_id=seed.venue_id)

    async def _venue_name(self, seed: Court) -> Optional[str]:
        if seed.venue.name:
            return seed.venue.name
        try:
            venue = await self.client.get_venue(seed.venue_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not load venue {seed.venue_id}: {e}")
            return None
        return venue.get("name")

    async def resolve(self, seed: Court) -> ResolvedCourts:
        """
        Resolve the courts that can be booked together with ``seed``.

        Falls back to the seed alone, with a warning, when lookups fail or
        return no eligible court.

        Args:
            seed: Court the booking dialog was opened for

        Returns:
            ResolvedCourts sorted by name and labelled
        """
        venue_name = await self._venue_name(seed)

        try:
            candidates = await self._lookup(seed)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Court lookup failed for venue {seed.venue_id}: {e}")
            return ResolvedCourts(
                courts=label_courts([seed]),
                venue_name=venue_name,
                warning="Could not load the venue's courts; using the current court",
            )

        siblings = [court for court in candidates if is_sibling(court, seed)]
        logger.info(
            f"Resolved {len(siblings)} {seed.sport_type} courts at venue {seed.venue_id} "
            f"from {len(candidates)} candidates"
        )

        if not siblings:
            return ResolvedCourts(
                courts=label_courts([seed]),
                venue_name=venue_name,
                warning=f"No other {seed.sport_type} courts found at this venue",
            )

        return ResolvedCourts(courts=label_courts(siblings), venue_name=venue_name)
