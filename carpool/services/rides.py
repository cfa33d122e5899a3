"""Driver-side ride operations: posting, capacity edits and seat repair."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.clock import Clock, as_utc, utcnow
from carpool.domain.compatibility import CompatibilityGate
from carpool.domain.enums import EventType, LuggageSize, RideStatus
from carpool.domain.errors import (
    DriverNotApproved,
    InvalidDelta,
    InvalidRideRequest,
    NotFound,
    NotOwner,
    RideNotBookable,
)
from carpool.infrastructure.models import RideModel, RideWishModel
from carpool.infrastructure.repositories import RideRepository, UserRepository
from carpool.services.bookings import default_gate
from carpool.services.events import EventPublisher, ride_payload
from carpool.services.inventory import RideInventoryManager
from carpool.services.wishes import WishMatchingEngine

logger = logging.getLogger(__name__)


class RideService:
    def __init__(
        self,
        session: AsyncSession,
        gate: Optional[CompatibilityGate] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.rides = RideRepository(session)
        self.users = UserRepository(session)
        self.inventory = RideInventoryManager(session)
        self.events = EventPublisher(session)
        self.wishes = WishMatchingEngine(session, gate or default_gate(), clock=clock)
        self.clock = clock

    async def post_ride(
        self,
        driver_id: int,
        departure_location: str,
        arrival_location: str,
        departure_time: datetime,
        seats_total: int,
        price_per_seat: int,
        departure_spot: Optional[str] = None,
        vehicle_make: Optional[str] = None,
        vehicle_model: Optional[str] = None,
        vehicle_color: Optional[str] = None,
        luggage_size: LuggageSize = LuggageSize.NONE,
        luggage_count: int = 0,
        occupant_males: int = 0,
        occupant_females: int = 0,
        occupant_couples: int = 0,
    ) -> tuple[RideModel, list[RideWishModel]]:
        """Publish a ride and return it with the standing wishes it matches."""
        driver = await self.users.get_by_id(driver_id)
        if driver is None:
            raise NotFound(f"User {driver_id} not found")
        if not driver.is_approved_driver:
            raise DriverNotApproved()
        if seats_total < 1:
            raise InvalidRideRequest("A ride needs at least one seat")
        if price_per_seat <= 0:
            raise InvalidRideRequest("Price per seat must be positive")
        if as_utc(departure_time) <= self.clock():
            raise InvalidRideRequest("Departure must be in the future")

        ride = await self.rides.create(
            RideModel(
                driver_id=driver_id,
                departure_location=departure_location.strip(),
                arrival_location=arrival_location.strip(),
                departure_spot=departure_spot,
                departure_time=as_utc(departure_time),
                seats_total=seats_total,
                seats_available=seats_total,
                version=0,
                price_per_seat=price_per_seat,
                currency=settings.currency,
                vehicle_make=vehicle_make,
                vehicle_model=vehicle_model,
                vehicle_color=vehicle_color,
                luggage_size=luggage_size,
                luggage_count=luggage_count,
                occupant_males=occupant_males,
                occupant_females=occupant_females,
                occupant_couples=occupant_couples,
                status=RideStatus.UPCOMING,
            )
        )
        await self.events.publish(EventType.RIDE_POSTED, ride.id, ride_payload(ride))
        matched = await self.wishes.on_ride_posted(ride)
        await self.session.commit()
        logger.info(
            "Ride %d posted by driver %d (%s -> %s)",
            ride.id, driver_id, ride.departure_location, ride.arrival_location,
        )
        return ride, matched

    async def _owned_ride(self, ride_id: int, driver_id: int) -> RideModel:
        ride = await self.rides.get_fresh(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        if ride.driver_id != driver_id:
            raise NotOwner()
        return ride

    async def update_capacity(
        self, ride_id: int, driver_id: int, seats_available: int
    ) -> RideModel:
        """Set the seats still on offer; booked seats are kept."""
        ride = await self._owned_ride(ride_id, driver_id)
        if ride.status != RideStatus.UPCOMING:
            raise RideNotBookable(f"Ride {ride_id} is {ride.status.value.lower()}")
        if seats_available < 0:
            raise InvalidDelta("Seats available cannot be negative")

        await self.inventory.grow(ride_id, seats_available - ride.seats_available)
        await self.session.commit()
        return await self.rides.get_fresh(ride_id)

    async def reconcile_seats(self, ride_id: int) -> RideModel:
        if await self.rides.get_by_id(ride_id) is None:
            raise NotFound(f"Ride {ride_id} not found")
        await self.inventory.reconcile(ride_id)
        await self.session.commit()
        return await self.rides.get_fresh(ride_id)

    async def get_ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_fresh(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        return ride
