from datetime import timedelta

import httpx
import pytest

from helpers import NOW, WEEKDAY, FakeBackend, FakeStore, availability_data, fixed_clock, make_court

from courtbook.schemas.booking import ReservationRequest, ReservationState, decode_hold_response
from courtbook.services.court_resolver import label_courts
from courtbook.services.reservation_service import ReservationService, build_draft, build_hold_request


def make_request(slot_keys=("18:00-19:00", "19:00-20:00"), court_ids=("A", "B")):
    options = label_courts([make_court(court_id, name=f"Pitch {court_id}") for court_id in court_ids])
    return ReservationRequest(
        venue_id="V1",
        courts=options,
        date=WEEKDAY,
        slot_keys=list(slot_keys),
        slot_prices={key: 200000 for key in slot_keys},
        owner="user-1",
    )


def backend_for(hold_response=None, **overrides):
    availability = {
        "A": availability_data("A", WEEKDAY),
        "B": availability_data("B", WEEKDAY),
    }
    availability.update(overrides)
    return FakeBackend(availability=availability, hold_response=hold_response)


def service(backend, store=None):
    return ReservationService(client=backend, store=store or FakeStore(), clock=fixed_clock())


class TestHoldResponseDecoding:
    def test_empty_body_is_success(self):
        assert decode_hold_response({}).success is True
        assert decode_hold_response({}) == decode_hold_response({"success": True})

    def test_only_explicit_false_fails(self):
        result = decode_hold_response({"success": False, "message": "Slot taken"})
        assert result.success is False
        assert result.message == "Slot taken"

        assert decode_hold_response({"success": None}).success is True
        assert decode_hold_response("OK").success is True

    def test_booking_id_from_data(self):
        assert decode_hold_response({"data": {"bookingId": "b1"}}).booking_id == "b1"
        assert decode_hold_response({"data": {"_id": "b2"}}).booking_id == "b2"


def test_draft_and_hold_request():
    draft = build_draft(make_request())

    assert draft.court_ids == ["A", "B"]
    assert draft.court_names == "Sân A (Pitch A), Sân B (Pitch B)"
    assert draft.date == "2026-10-20"
    assert draft.court_quantity == 2
    assert draft.total_price == 400000

    payload = build_hold_request(draft).to_payload()
    assert payload == {
        "venueId": "V1",
        "courtIds": ["A", "B"],
        "date": "2026-10-20",
        "timeSlots": [
            {"startTime": "18:00", "endTime": "19:00", "price": 200000},
            {"startTime": "19:00", "endTime": "20:00", "price": 200000},
        ],
    }


@pytest.mark.asyncio
async def test_granted_hold_hands_off():
    backend = backend_for(hold_response={"success": True, "data": {"bookingId": "bk-1"}})
    store = FakeStore()
    states = []

    outcome = await service(backend, store).reserve(make_request(), on_state=states.append)

    assert outcome.state == ReservationState.HANDED_OFF
    assert states == [
        ReservationState.CHECKING,
        ReservationState.HOLDING,
        ReservationState.HOLD_GRANTED,
        ReservationState.HANDED_OFF,
    ]
    assert outcome.handoff.booking_id == "bk-1"
    assert outcome.handoff.hold_until == NOW + timedelta(minutes=5)
    assert outcome.handoff.booking_data.total_price == 400000

    saved = store.records["user-1"]
    assert saved.booking_id == "bk-1"
    assert saved.hold_until == NOW + timedelta(minutes=5)
    assert saved.timestamp == NOW


@pytest.mark.asyncio
async def test_empty_hold_body_is_granted():
    backend = backend_for(hold_response={})

    outcome = await service(backend).reserve(make_request())

    assert outcome.state == ReservationState.HANDED_OFF
    assert outcome.handoff.booking_id is None


@pytest.mark.asyncio
async def test_server_hold_conflict_skips_hold_request():
    backend = backend_for(B=availability_data("B", WEEKDAY, held={19: (NOW + timedelta(minutes=4), "x")}))
    store = FakeStore()
    states = []

    outcome = await service(backend, store).reserve(make_request(), on_state=states.append)

    assert outcome.state == ReservationState.CONFLICT
    assert states == [ReservationState.CHECKING, ReservationState.CONFLICT]
    assert outcome.remaining_selection == ["18:00-19:00"]
    assert [c.slot_key for c in outcome.conflicts] == ["19:00-20:00"]
    assert backend.hold_requests == []
    assert store.records == {}


@pytest.mark.asyncio
async def test_explicit_failure_is_denied():
    backend = backend_for(hold_response={"success": False, "message": "Slot already held"})
    store = FakeStore()

    outcome = await service(backend, store).reserve(make_request())

    assert outcome.state == ReservationState.HOLD_DENIED
    assert outcome.error == "Slot already held"
    assert outcome.remaining_selection == ["18:00-19:00", "19:00-20:00"]
    assert store.records == {}


@pytest.mark.asyncio
async def test_network_error_on_hold_is_denied():
    backend = backend_for(hold_response=httpx.ConnectError("connection refused"))

    outcome = await service(backend).reserve(make_request())

    assert outcome.state == ReservationState.HOLD_DENIED
    assert "connection refused" in outcome.error
    assert len(backend.hold_requests) == 1


@pytest.mark.asyncio
async def test_failed_precheck_never_requests_hold():
    backend = backend_for(A=httpx.ReadTimeout("timed out"))

    outcome = await service(backend).reserve(make_request())

    assert outcome.state == ReservationState.HOLD_DENIED
    assert outcome.error.startswith("Could not verify availability")
    assert backend.hold_requests == []


@pytest.mark.asyncio
async def test_release_and_resume():
    backend = backend_for(hold_response={"data": {"bookingId": "bk-9"}})
    store = FakeStore()
    svc = service(backend, store)

    await svc.reserve(make_request())
    resumed = await svc.resume("user-1")
    assert resumed.booking_id == "bk-9"

    await svc.release("bk-9", "user-1")

    assert backend.released == ["bk-9"]
    assert await svc.resume("user-1") is None
