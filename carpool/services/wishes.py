"""
Wish Matching Engine
====================

Two read-side triggers, neither of which touches seat inventory:

* ``on_ride_posted``  -- which standing wishes does a new ride satisfy?
  Each match emits ``wish.matched`` so the wisher is told about the ride.
* ``on_wish_created`` -- which local approved drivers could serve a new
  wish they have no ride for yet?  Each emits ``wish.driver_candidate``.

A wish only becomes FULFILLED through ``fulfil_for_booking``, once the
wisher actually holds a confirmed booking on a covering ride.

Complexity: O(W) per posted ride for W active wishes on that date;
O(D) per created wish for D approved drivers.
"""

from __future__ import annotations

import logging
from datetime import date, time
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import Clock, as_utc, utcnow
from carpool.domain.compatibility import CompatibilityGate
from carpool.domain.entities import DriverCandidate, SelfTraveller, ThirdPartyTraveller, Traveller
from carpool.domain.enums import EventType, RideStatus, WishStatus
from carpool.domain.errors import InvalidWishRequest, NotFound
from carpool.domain.wishes import (
    is_expired,
    same_area,
    wish_covers_ride,
    wish_matches_ride,
)
from carpool.infrastructure.models import BookingModel, RideModel, RideWishModel
from carpool.infrastructure.repositories import (
    RideRepository,
    RideWishRepository,
    UserRepository,
)
from carpool.services.events import EventPublisher, ride_payload, wish_payload
from carpool.services.profiles import (
    driver_company,
    ride_company,
    user_party,
    wish_traveller,
)

logger = logging.getLogger(__name__)


class WishMatchingEngine:
    def __init__(
        self,
        session: AsyncSession,
        gate: CompatibilityGate,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.wishes = RideWishRepository(session)
        self.rides = RideRepository(session)
        self.users = UserRepository(session)
        self.events = EventPublisher(session)
        self.gate = gate
        self.clock = clock

    async def create_wish(
        self,
        user_id: int,
        departure_location: str,
        arrival_location: str,
        desired_date: date,
        desired_time: Optional[time] = None,
        passengers_count: int = 1,
        traveller: Traveller = SelfTraveller(),
    ) -> tuple[RideWishModel, list[DriverCandidate]]:
        if await self.users.get_by_id(user_id) is None:
            raise NotFound(f"User {user_id} not found")
        if not departure_location.strip() or not arrival_location.strip():
            raise InvalidWishRequest("Departure and arrival are required")
        if passengers_count < 1:
            raise InvalidWishRequest("At least one passenger is required")
        if is_expired(desired_date, self.clock().date()):
            raise InvalidWishRequest("Date must be today or in the future")

        third_party = traveller if isinstance(traveller, ThirdPartyTraveller) else None
        wish = await self.wishes.create(
            RideWishModel(
                user_id=user_id,
                departure_location=departure_location.strip(),
                arrival_location=arrival_location.strip(),
                desired_date=desired_date,
                desired_time=desired_time,
                passengers_count=passengers_count,
                traveller_kind=traveller.kind,
                third_party_gender=third_party.gender if third_party else None,
                third_party_age_group=third_party.age_group if third_party else None,
                status=WishStatus.ACTIVE,
            )
        )
        await self.events.publish(EventType.WISH_CREATED, wish.id, wish_payload(wish))
        candidates = await self.on_wish_created(wish)
        await self.session.commit()
        logger.info(
            "Wish %d created (%s -> %s on %s), %d driver candidate(s)",
            wish.id, wish.departure_location, wish.arrival_location,
            wish.desired_date, len(candidates),
        )
        return wish, candidates

    async def on_ride_posted(self, ride: RideModel) -> list[RideWishModel]:
        if ride.status != RideStatus.UPCOMING:
            return []
        driver = await self.users.get_by_id(ride.driver_id)
        if driver is None:
            raise NotFound(f"Driver {ride.driver_id} not found")

        today = self.clock().date()
        company = ride_company(ride, driver)
        matched: list[RideWishModel] = []
        for wish in await self.wishes.get_active_for_date(
            as_utc(ride.departure_time).date()
        ):
            if is_expired(wish.desired_date, today) or not wish_matches_ride(wish, ride):
                continue
            wisher = await self.users.get_by_id(wish.user_id)
            if wisher is None:
                continue
            party = user_party(wish_traveller(wish), wisher)
            if not self.gate.is_compatible(party, company):
                continue
            matched.append(wish)
            await self.events.publish(
                EventType.WISH_MATCHED,
                wish.id,
                {**wish_payload(wish), **ride_payload(ride)},
            )

        if matched:
            logger.info("Ride %d matched %d wish(es)", ride.id, len(matched))
        return matched

    async def on_wish_created(self, wish: RideWishModel) -> list[DriverCandidate]:
        if wish.status != WishStatus.ACTIVE or is_expired(
            wish.desired_date, self.clock().date()
        ):
            return []
        wisher = await self.users.get_by_id(wish.user_id)
        if wisher is None:
            raise NotFound(f"User {wish.user_id} not found")
        party = user_party(wish_traveller(wish), wisher)

        already_driving = {
            ride.driver_id
            for ride in await self.rides.get_upcoming_on_route(
                wish.departure_location, wish.arrival_location
            )
            if as_utc(ride.departure_time).date() == wish.desired_date
        }

        candidates: list[DriverCandidate] = []
        for driver in await self.users.get_approved_drivers():
            if driver.id == wish.user_id or driver.id in already_driving:
                continue
            if not same_area(driver.home_area, wish.departure_location):
                continue
            if not self.gate.is_compatible(party, driver_company(driver)):
                continue
            candidate = DriverCandidate(driver.id, driver.name, driver.home_area)
            candidates.append(candidate)
            await self.events.publish(
                EventType.WISH_DRIVER_CANDIDATE,
                wish.id,
                {**wish_payload(wish), "driver_id": driver.id},
            )
        return candidates

    async def fulfil_for_booking(
        self, booking: BookingModel, ride: RideModel
    ) -> list[RideWishModel]:
        """Mark the passenger's wishes covered by a confirmed booking."""
        fulfilled: list[RideWishModel] = []
        for wish in await self.wishes.get_active_for_user(booking.passenger_id):
            if not wish_covers_ride(wish, ride):
                continue
            if booking.traveller_kind != wish.traveller_kind:
                continue
            if await self.wishes.mark_fulfilled(wish.id, booking.id):
                fulfilled.append(wish)
                await self.events.publish(
                    EventType.WISH_FULFILLED,
                    wish.id,
                    {**wish_payload(wish), "booking_id": booking.id, "ride_id": ride.id},
                )
        return fulfilled
