"""
Wish matching tests: the pure rules, ride-posted matching, local driver
candidates and wish validation.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from carpool.domain.entities import ThirdPartyTraveller
from carpool.domain.enums import EventType, Gender, TravelStatus
from carpool.domain.errors import InvalidWishRequest, NotFound
from carpool.domain.wishes import area_for_location, is_expired, same_area, same_route
from carpool.infrastructure.models import OutboxEventModel
from carpool.services.rides import RideService
from carpool.services.wishes import WishMatchingEngine
from tests.conftest import NOW

DEPARTURE = NOW + timedelta(hours=100)
TRAVEL_DATE = DEPARTURE.date()
FROM = "Gateshead Metro Station"
TO = "Manchester Airport"


@pytest.fixture
def engine(db_session, gate, clock):
    return WishMatchingEngine(db_session, gate, clock)


@pytest.fixture
def rides(db_session, gate, clock):
    return RideService(db_session, gate=gate, clock=clock)


@pytest_asyncio.fixture
async def driver(make_user):
    return await make_user("Driver", is_approved_driver=True, home_area="Gateshead")


async def events_of(session, event_type: EventType) -> list[OutboxEventModel]:
    result = await session.execute(
        select(OutboxEventModel)
        .where(OutboxEventModel.event_type == event_type.value)
        .order_by(OutboxEventModel.id)
    )
    return list(result.scalars().all())


# ── Rules ─────────────────────────────────────────────────────────────


class TestRules:
    def test_route_ignores_case_and_spacing(self):
        assert same_route(
            "gateshead  metro station ", "MANCHESTER AIRPORT", FROM, TO
        )
        assert not same_route(TO, FROM, FROM, TO)

    def test_known_location_maps_to_area(self):
        assert area_for_location("IKEA Gateshead") == "Gateshead"
        assert area_for_location("heathrow airport") == "London"

    def test_unknown_location_is_its_own_area(self):
        assert area_for_location(" Durham ") == "Durham"
        assert same_area("Durham", "durham")
        assert not same_area("Durham", "Gateshead")

    def test_area_name_matches_its_locations(self):
        assert same_area("Gateshead", FROM)
        assert not same_area("Manchester", FROM)
        assert not same_area(None, FROM)

    def test_today_is_not_expired(self):
        today = date(2026, 3, 2)
        assert not is_expired(today, today)
        assert is_expired(today - timedelta(days=1), today)


# ── Ride posted ───────────────────────────────────────────────────────


class TestRidePosted:
    @pytest.mark.asyncio
    async def test_matching_wish_is_notified(self, db_session, engine, rides, driver, make_user):
        wisher = await make_user("Wisher")
        wish, _ = await engine.create_wish(wisher.id, FROM, TO, TRAVEL_DATE)

        ride, matched = await rides.post_ride(driver.id, FROM, TO, DEPARTURE, 4, 2000)
        assert [w.id for w in matched] == [wish.id]

        (event,) = await events_of(db_session, EventType.WISH_MATCHED)
        assert event.aggregate_id == str(wish.id)
        assert event.payload["ride_id"] == ride.id
        assert event.payload["user_id"] == wisher.id

    @pytest.mark.asyncio
    async def test_route_match_is_case_insensitive(self, engine, rides, driver, make_user):
        wisher = await make_user("Wisher")
        wish, _ = await engine.create_wish(
            wisher.id, "  gateshead metro station", "manchester airport ", TRAVEL_DATE
        )
        _, matched = await rides.post_ride(driver.id, FROM, TO, DEPARTURE, 4, 2000)
        assert [w.id for w in matched] == [wish.id]

    @pytest.mark.asyncio
    async def test_non_matching_wishes_are_skipped(self, engine, rides, driver, make_user):
        other_day = await make_user("Other day")
        await engine.create_wish(other_day.id, FROM, TO, TRAVEL_DATE + timedelta(days=1))
        reverse = await make_user("Reverse")
        await engine.create_wish(reverse.id, TO, FROM, TRAVEL_DATE)
        crowd = await make_user("Crowd")
        await engine.create_wish(crowd.id, FROM, TO, TRAVEL_DATE, passengers_count=5)
        woman = await make_user("Solo woman", gender=Gender.FEMALE)
        await engine.create_wish(woman.id, FROM, TO, TRAVEL_DATE)
        await engine.create_wish(driver.id, FROM, TO, TRAVEL_DATE)

        _, matched = await rides.post_ride(driver.id, FROM, TO, DEPARTURE, 4, 2000)
        assert matched == []

    @pytest.mark.asyncio
    async def test_occupants_open_the_ride_to_more_wishers(
        self, engine, rides, driver, make_user
    ):
        woman = await make_user("Solo woman", gender=Gender.FEMALE)
        wish, _ = await engine.create_wish(woman.id, FROM, TO, TRAVEL_DATE)

        _, matched = await rides.post_ride(
            driver.id, FROM, TO, DEPARTURE, 4, 2000, occupant_females=1
        )
        assert [w.id for w in matched] == [wish.id]

    @pytest.mark.asyncio
    async def test_third_party_wish_uses_traveller_gender(
        self, engine, rides, driver, make_user
    ):
        woman = await make_user("Booker", gender=Gender.FEMALE)
        wish, _ = await engine.create_wish(
            woman.id,
            FROM,
            TO,
            TRAVEL_DATE,
            traveller=ThirdPartyTraveller(gender=Gender.MALE, age_group="18-25"),
        )
        _, matched = await rides.post_ride(driver.id, FROM, TO, DEPARTURE, 4, 2000)
        assert [w.id for w in matched] == [wish.id]


# ── Wish created ──────────────────────────────────────────────────────


class TestDriverCandidates:
    @pytest.mark.asyncio
    async def test_local_compatible_drivers_are_candidates(
        self, db_session, engine, driver, make_user
    ):
        await make_user("Far away", is_approved_driver=True, home_area="London")
        await make_user("Unapproved", home_area="Gateshead")
        await make_user(
            "Local woman", gender=Gender.FEMALE, is_approved_driver=True, home_area="Gateshead"
        )
        couple = await make_user(
            "Local couple",
            gender=Gender.FEMALE,
            travel_status=TravelStatus.COUPLE,
            is_approved_driver=True,
            home_area="IKEA Gateshead",
        )
        wisher = await make_user("Wisher")

        wish, candidates = await engine.create_wish(wisher.id, FROM, TO, TRAVEL_DATE)
        assert sorted(c.driver_id for c in candidates) == sorted([driver.id, couple.id])

        events = await events_of(db_session, EventType.WISH_DRIVER_CANDIDATE)
        assert sorted(e.payload["driver_id"] for e in events) == sorted(
            [driver.id, couple.id]
        )
        assert all(e.aggregate_id == str(wish.id) for e in events)

    @pytest.mark.asyncio
    async def test_driver_already_on_route_is_not_a_candidate(
        self, engine, rides, driver, make_user
    ):
        await rides.post_ride(driver.id, FROM, TO, DEPARTURE, 4, 2000)
        wisher = await make_user("Wisher")
        _, candidates = await engine.create_wish(wisher.id, FROM, TO, TRAVEL_DATE)
        assert candidates == []

    @pytest.mark.asyncio
    async def test_route_spacing_does_not_hide_a_posted_ride(
        self, engine, rides, driver, make_user
    ):
        await rides.post_ride(
            driver.id, "Gateshead  Metro   Station", "manchester airport", DEPARTURE, 4, 2000
        )
        wisher = await make_user("Wisher")
        _, candidates = await engine.create_wish(wisher.id, FROM, TO, TRAVEL_DATE)
        assert candidates == []

    @pytest.mark.asyncio
    async def test_wisher_is_never_their_own_candidate(self, engine, driver):
        _, candidates = await engine.create_wish(driver.id, FROM, TO, TRAVEL_DATE)
        assert candidates == []


class TestCreateWish:
    @pytest.mark.asyncio
    async def test_wish_is_stored_active(self, db_session, engine, make_user):
        wisher = await make_user("Wisher")
        wish, _ = await engine.create_wish(wisher.id, f"  {FROM} ", TO, TRAVEL_DATE)
        assert wish.departure_location == FROM
        assert wish.status.value == "ACTIVE"
        assert len(await events_of(db_session, EventType.WISH_CREATED)) == 1

    @pytest.mark.asyncio
    async def test_today_is_accepted(self, engine, make_user):
        wisher = await make_user("Wisher")
        wish, _ = await engine.create_wish(wisher.id, FROM, TO, NOW.date())
        assert wish.desired_date == NOW.date()

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, engine, make_user):
        wisher = await make_user("Wisher")
        with pytest.raises(InvalidWishRequest):
            await engine.create_wish(wisher.id, FROM, TO, NOW.date() - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_blank_location_rejected(self, engine, make_user):
        wisher = await make_user("Wisher")
        with pytest.raises(InvalidWishRequest):
            await engine.create_wish(wisher.id, "   ", TO, TRAVEL_DATE)

    @pytest.mark.asyncio
    async def test_zero_passengers_rejected(self, engine, make_user):
        wisher = await make_user("Wisher")
        with pytest.raises(InvalidWishRequest):
            await engine.create_wish(wisher.id, FROM, TO, TRAVEL_DATE, passengers_count=0)

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine):
        with pytest.raises(NotFound):
            await engine.create_wish(999, FROM, TO, TRAVEL_DATE)
