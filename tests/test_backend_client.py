from datetime import date

import httpx
import pytest

from courtbook.schemas.booking import HoldRequest, HoldSlot
from courtbook.services.backend_client import BookingBackendClient, unwrap_courts

COURT = {
    "_id": "X",
    "name": "Field 1",
    "venueId": "V1",
    "sportType": "football",
    "isActive": True,
}


def make_client(handler, **kwargs):
    kwargs.setdefault("retry_base_delay", 0)
    return BookingBackendClient(
        base_url="http://backend.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def hold_request():
    return HoldRequest(
        venue_id="V1",
        court_ids=["X"],
        date="2026-10-20",
        time_slots=[HoldSlot(start_time="18:00", end_time="19:00", price=100000)],
    )


@pytest.mark.parametrize(
    "body",
    [
        {"data": {"courts": [COURT]}},
        {"data": {"data": {"courts": [COURT]}}},
        {"data": [COURT]},
        {"success": True, "data": {"courts": [COURT]}},
        [COURT],
    ],
)
def test_unwrap_court_envelopes(body):
    assert unwrap_courts(body) == [COURT]


def test_unwrap_unknown_shape():
    assert unwrap_courts({"message": "nothing here"}) == []
    assert unwrap_courts(None) == []


@pytest.mark.asyncio
async def test_courts_by_venue_skips_malformed_records():
    def handler(request):
        assert request.url.path == "/api/v1/courts/venue/V1"
        return httpx.Response(200, json={"data": {"courts": [COURT, {"name": "no id"}]}})

    courts = await make_client(handler).get_courts_by_venue("V1")

    assert [court.id for court in courts] == ["X"]


@pytest.mark.asyncio
async def test_courts_by_sport_sends_venue_filter():
    seen = {}

    def handler(request):
        seen["path"] = request.url.raw_path.decode()
        seen["venue"] = request.url.params.get("venueId")
        return httpx.Response(200, json={"data": [COURT]})

    await make_client(handler).get_courts_by_sport("table tennis", venue_id="V1")

    assert seen["path"].startswith("/api/v1/courts/sport/table%20tennis")
    assert seen["venue"] == "V1"


@pytest.mark.asyncio
async def test_availability_query_and_court_id():
    def handler(request):
        assert request.url.path == "/api/v1/courts/X/availability"
        assert request.url.params["date"] == "2026-10-20"
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "date": "2026-10-20",
                    "timeSlots": [{"start": "18:00", "end": "19:00", "isAvailable": True}],
                    "heldSlots": [
                        {"start": "19:00", "end": "20:00", "holdUntil": "2026-10-20T11:05:00Z", "bookingId": "b1"}
                    ],
                },
            },
        )

    availability = await make_client(handler).get_court_availability("X", date(2026, 10, 20))

    assert availability.court_id == "X"
    assert availability.time_slots[0].is_available is True
    assert availability.held_slots[0].booking_id == "b1"
    assert availability.held_slots[0].hold_until.tzinfo is not None


@pytest.mark.asyncio
async def test_reads_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"data": {"_id": "V1", "name": "Riverside"}})

    venue = await make_client(handler, max_retries=3).get_venue("V1")

    assert venue["name"] == "Riverside"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_reads_give_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(httpx.HTTPStatusError):
        await make_client(handler, max_retries=2).get_court("X")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_hold_is_posted_once():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        await make_client(handler, max_retries=3).hold_booking(hold_request())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_hold_payload_and_empty_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200)

    body = await make_client(handler).hold_booking(hold_request())

    assert body == {}
    assert seen["method"] == "POST"
    assert seen["path"] == "/api/v1/bookings/hold"
    assert b'"courtIds":["X"]' in seen["body"].replace(b" ", b"")
    assert b'"startTime":"18:00"' in seen["body"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_rejected_hold_returns_error_body():
    def handler(request):
        return httpx.Response(409, json={"message": "Slot already held"})

    body = await make_client(handler).hold_booking(hold_request())

    assert body == {"message": "Slot already held", "success": False}


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_once():
    tokens = {"current": "stale"}
    refreshes = []

    async def refresh():
        refreshes.append(1)
        tokens["current"] = "fresh"
        return "fresh"

    def handler(request):
        if request.headers.get("Authorization") != "Bearer fresh":
            return httpx.Response(401)
        return httpx.Response(200, json={"data": COURT})

    client = make_client(handler, token_getter=lambda: tokens["current"], token_refresher=refresh)
    court = await client.get_court("X")

    assert court.id == "X"
    assert refreshes == [1]
