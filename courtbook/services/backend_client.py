"""Booking backend API client.

This module handles all interactions with the booking backend's REST
endpoints: court lookups, live court availability, and short-term holds.

The backend wraps responses in an envelope ``{success?, data?, message?}``.
Idempotent reads are retried with exponential backoff; the hold request is
sent exactly once per call so a retry can never create a second hold.
"""
import asyncio
import logging
from urllib.parse import quote
from typing import Any, Awaitable, Callable, Dict, List, Optional
from datetime import date
import httpx
from pydantic import ValidationError

from courtbook.core.config import settings
from courtbook.schemas.availability import CourtAvailability
from courtbook.schemas.booking import HoldRequest
from courtbook.schemas.court import Court

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], Optional[str]]
TokenRefresher = Callable[[], Awaitable[Optional[str]]]


def unwrap_courts(body: Any) -> List[Dict[str, Any]]:
    """
    Extract the court list from any of the backend's envelope shapes.

    Accepted shapes:
        {"data": {"courts": [...]}}
        {"data": {"data": {"courts": [...]}}}
        {"data": [...]}
        {"success": true, "data": {"courts": [...]}}
        [...]
    """
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return []

    data = body.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("courts"), list):
            return data["courts"]
        nested = data.get("data")
        if isinstance(nested, dict) and isinstance(nested.get("courts"), list):
            return nested["courts"]
        if isinstance(nested, list):
            return nested
    if isinstance(body.get("courts"), list):
        return body["courts"]
    return []


def unwrap_data(body: Any) -> Any:
    """Return the ``data`` member of an envelope, or the body itself."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def parse_courts(items: List[Dict[str, Any]]) -> List[Court]:
    """Parse court records, skipping malformed ones."""
    courts = []
    for item in items:
        try:
            courts.append(Court.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed court record: {e}")
    return courts


class BookingBackendClient:
    """Client for the booking backend's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_getter: Optional[TokenGetter] = None,
        token_refresher: Optional[TokenRefresher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        retry_base_delay: float = 1.0,
    ):
        """
        Initialize the backend client.

        Args:
            base_url: Backend base URL (defaults to settings)
            token_getter: Returns the current access token, if any
            token_refresher: Obtains a new access token after a 401
            transport: Optional httpx transport (used by tests)
            max_retries: Attempts for idempotent requests
            timeout: Per-request timeout in seconds
            retry_base_delay: Base of the exponential backoff, in seconds
        """
        self.base_url = base_url or settings.BACKEND_BASE_URL
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.retry_base_delay = retry_base_delay
        self._token_getter = token_getter
        self._token_refresher = token_refresher
        self._transport = transport
        self._refresh_lock = asyncio.Lock()

        self.endpoints = {
            "court": "/api/v1/courts/{court_id}",
            "courts_by_venue": "/api/v1/courts/venue/{venue_id}",
            "courts_by_sport": "/api/v1/courts/sport/{sport_type}",
            "venue": "/api/v1/venues/{venue_id}",
            "availability": "/api/v1/courts/{court_id}/availability",
            "hold": "/api/v1/bookings/hold",
            "release": "/api/v1/bookings/{booking_id}/release",
        }

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        token = token if token is not None else (
            self._token_getter() if self._token_getter else None
        )
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _refresh_token(self, stale_token: Optional[str]) -> Optional[str]:
        """Refresh the access token once, even when several requests hit 401."""
        if self._token_refresher is None:
            return None

        async with self._refresh_lock:
            current = self._token_getter() if self._token_getter else None
            if current and current != stale_token:
                # Another request already refreshed it
                return current
            logger.info("Access token rejected, refreshing")
            return await self._token_refresher()

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        headers = self._headers()
        response = await client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers=headers,
            timeout=self.timeout,
        )

        if response.status_code == 401:
            stale = headers.get("Authorization", "").removeprefix("Bearer ") or None
            new_token = await self._refresh_token(stale)
            if new_token:
                response = await client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    headers=self._headers(new_token),
                    timeout=self.timeout,
                )

        return response

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Any:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request path relative to the base URL
            params: Query parameters
            json_data: JSON body data
            retry: Retry on failure; disable for non-idempotent requests

        Returns:
            Response JSON data

        Raises:
            httpx.HTTPError: If request fails after retries
        """
        attempts = self.max_retries if retry else 1

        async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport) as client:
            for attempt in range(attempts):
                try:
                    logger.info(f"Making {method} request to {url} (attempt {attempt + 1}/{attempts})")

                    response = await self._send(client, method, url, params, json_data)
                    response.raise_for_status()

                    if not response.content:
                        return {}
                    return response.json()

                except httpx.HTTPError as e:
                    logger.warning(f"Request failed (attempt {attempt + 1}/{attempts}): {e}")

                    if attempt == attempts - 1:
                        raise

                    # Exponential backoff
                    await asyncio.sleep(self.retry_base_delay * 2 ** attempt)

            raise httpx.HTTPError("Max retries exceeded")

    async def get_court(self, court_id: str) -> Court:
        """
        Get a single court.

        Args:
            court_id: Court ID

        Returns:
            Court record

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the response holds no valid court
        """
        logger.info(f"Fetching court {court_id}")

        body = await self._make_request("GET", self.endpoints["court"].format(court_id=court_id))
        return Court.model_validate(unwrap_data(body))

    async def get_courts_by_venue(self, venue_id: str) -> List[Court]:
        """
        Get all courts of a venue.

        Args:
            venue_id: Venue ID

        Returns:
            List of court records
        """
        logger.info(f"Fetching courts for venue {venue_id}")

        body = await self._make_request(
            "GET", self.endpoints["courts_by_venue"].format(venue_id=venue_id)
        )
        courts = parse_courts(unwrap_courts(body))
        logger.info(f"Found {len(courts)} courts for venue {venue_id}")
        return courts

    async def get_courts_by_sport(
        self, sport_type: str, venue_id: Optional[str] = None
    ) -> List[Court]:
        """
        Get courts offering a sport, optionally narrowed to a venue.

        The backend may ignore the venue filter; callers filter again.

        Args:
            sport_type: Sport type, e.g. "football"
            venue_id: Optional venue ID filter

        Returns:
            List of court records
        """
        logger.info(f"Fetching {sport_type} courts (venue filter: {venue_id})")

        url = self.endpoints["courts_by_sport"].format(sport_type=quote(sport_type, safe=""))
        params = {"venueId": venue_id} if venue_id else None
        body = await self._make_request("GET", url, params=params)
        return parse_courts(unwrap_courts(body))

    async def get_venue(self, venue_id: str) -> Dict[str, Any]:
        """Get venue details."""
        logger.info(f"Fetching venue {venue_id}")

        body = await self._make_request("GET", self.endpoints["venue"].format(venue_id=venue_id))
        data = unwrap_data(body)
        return data if isinstance(data, dict) else {}

    async def get_court_availability(
        self, court_id: str, target_date: date
    ) -> CourtAvailability:
        """
        Get live availability and active holds for a court on a date.

        Args:
            court_id: Court ID
            target_date: Date to fetch availability for

        Returns:
            CourtAvailability with time slots and held slots
        """
        date_str = target_date.strftime("%Y-%m-%d")
        logger.info(f"Fetching availability for court {court_id} on {date_str}")

        body = await self._make_request(
            "GET",
            self.endpoints["availability"].format(court_id=court_id),
            params={"date": date_str},
        )
        availability = CourtAvailability.model_validate(unwrap_data(body) or {})
        if availability.court_id is None:
            availability.court_id = court_id
        return availability

    async def hold_booking(self, hold_request: HoldRequest) -> Any:
        """
        Request a short-term hold on slots.

        Sent once, without retries. A 4xx response carrying a JSON envelope
        is returned as the body so that ``success: false`` can be decoded.

        Args:
            hold_request: Hold request

        Returns:
            Raw response body

        Raises:
            httpx.HTTPError: On transport errors or non-JSON error responses
        """
        logger.info(
            f"Requesting hold for courts {hold_request.court_ids} on {hold_request.date} "
            f"({len(hold_request.time_slots)} slots)"
        )

        try:
            return await self._make_request(
                "POST",
                self.endpoints["hold"],
                json_data=hold_request.to_payload(),
                retry=False,
            )
        except httpx.HTTPStatusError as e:
            if e.response.is_client_error:
                try:
                    body = e.response.json()
                except ValueError:
                    body = None
                if isinstance(body, dict):
                    body.setdefault("success", False)
                    return body
            raise

    async def release_booking(self, booking_id: str) -> Any:
        """Release a held booking."""
        logger.info(f"Releasing hold for booking {booking_id}")

        return await self._make_request(
            "POST",
            self.endpoints["release"].format(booking_id=booking_id),
            retry=False,
        )


# Singleton instance
backend_client = BookingBackendClient()
