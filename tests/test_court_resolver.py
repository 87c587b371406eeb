import httpx
import pytest

from helpers import FakeBackend, court_data, make_court

from courtbook.schemas.court import Court, normalize_venue_ref
from courtbook.services.court_resolver import CourtResolver, court_label, is_sibling, label_courts


def test_court_labels():
    assert court_label(0) == "Sân A"
    assert court_label(25) == "Sân Z"
    assert court_label(26) == "Sân 27"
    assert court_label(1, prefix="Court") == "Court B"


def test_venue_reference_shapes():
    assert normalize_venue_ref("V1").id == "V1"
    assert normalize_venue_ref({"_id": "V1", "name": "Riverside"}).name == "Riverside"
    assert normalize_venue_ref({"id": "V1"}).id == "V1"
    with pytest.raises(ValueError):
        normalize_venue_ref({"name": "no id"})


def test_embedded_venue_is_same_venue():
    seed = make_court("X")
    embedded = Court.model_validate(court_data("Y", venue={"_id": "V1", "name": "Riverside"}))

    assert is_sibling(embedded, seed)
    assert not is_sibling(make_court("Z", active=False), seed)
    assert not is_sibling(make_court("T", sport="tennis"), seed)
    assert not is_sibling(make_court("Q", venue="V2"), seed)


def test_labels_follow_name_order():
    courts = [make_court("1", name="beta"), make_court("2", name="Alpha"), make_court("3", name="Gamma")]

    options = label_courts(courts)

    assert [option.court.name for option in options] == ["Alpha", "beta", "Gamma"]
    assert options[1].display_name == "Sân B (beta)"


@pytest.mark.asyncio
async def test_resolve_filters_candidates():
    backend = FakeBackend(courts=[
        court_data("X", name="Field 1"),
        court_data("Y", name="Field 2", venue={"_id": "V1"}),
        court_data("T", name="Tennis", sport="tennis"),
        court_data("I", name="Closed", active=False),
        court_data("Q", name="Elsewhere", venue="V2"),
    ])

    resolved = await CourtResolver(backend).resolve(make_court("X", name="Field 1"))

    assert [option.id for option in resolved.courts] == ["X", "Y"]
    assert resolved.venue_name == "Riverside Sports"
    assert resolved.warning is None


@pytest.mark.asyncio
async def test_many_courts_get_numeric_labels():
    courts = [court_data(f"C{i:02d}", name=f"Field {i:02d}") for i in range(28)]
    resolved = await CourtResolver(FakeBackend(courts=courts)).resolve(make_court("C00", name="Field 00"))

    assert resolved.courts[25].label == "Sân Z"
    assert resolved.courts[27].label == "Sân 28"


@pytest.mark.asyncio
async def test_sport_lookup_is_used_when_venue_lookup_fails():
    backend = FakeBackend(
        courts=[court_data("X"), court_data("Y"), court_data("Q", venue="V2")],
        venue_error=httpx.ConnectError("venue endpoint down"),
    )

    resolved = await CourtResolver(backend).resolve(make_court("X"))

    assert [option.id for option in resolved.courts] == ["X", "Y"]


@pytest.mark.asyncio
async def test_falls_back_to_seed_when_lookups_fail():
    error = httpx.ConnectError("down")
    backend = FakeBackend(courts=[court_data("Y")], venue_error=error, sport_error=error)

    resolved = await CourtResolver(backend).resolve(make_court("X"))

    assert [option.id for option in resolved.courts] == ["X"]
    assert resolved.courts[0].label == "Sân A"
    assert "Could not load" in resolved.warning


@pytest.mark.asyncio
async def test_falls_back_to_seed_when_nothing_matches():
    backend = FakeBackend(courts=[court_data("T", sport="tennis")])

    resolved = await CourtResolver(backend).resolve(make_court("X"))

    assert [option.id for option in resolved.courts] == ["X"]
    assert resolved.warning == "No other football courts found at this venue"


@pytest.mark.asyncio
async def test_embedded_venue_name_skips_lookup():
    seed = Court.model_validate(court_data("X", venue={"_id": "V1", "name": "Harbour Arena"}))

    resolved = await CourtResolver(FakeBackend(courts=[court_data("X")])).resolve(seed)

    assert resolved.venue_name == "Harbour Arena"
