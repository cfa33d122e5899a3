"""
Ride Inventory Manager
======================

Owns every write to ``rides.seats_available`` / ``rides.seats_total``.

Concurrency safety
------------------
Each write is an optimistic compare-and-set on ``rides.version``:

1. read ``(seats_total, seats_available, version, status)`` from the row
2. check the request against that snapshot
3. ``UPDATE ... WHERE id = :id AND version = :version``

Zero rows updated means another writer got in first; re-read and try
again, at most ``settings.inventory_max_retries`` times.  A CAS only
fails when another write succeeded, so while only reservations are
running, a ride with ``k`` seats makes a request lose at most ``k``
races before it sees the ride as full.

Releasing seats twice for the same booking is prevented by the caller:
release only follows a successful status compare-and-set on the booking.
Changing a ride's status also bumps its version, so a reservation racing
a cancellation fails its CAS and re-reads the ride as no longer bookable.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.entities import Ride
from carpool.domain.enums import RideStatus
from carpool.domain.errors import (
    InvalidBookingRequest,
    InvalidDelta,
    InventoryContention,
    NotFound,
    RideNotBookable,
    SeatsUnavailable,
)
from carpool.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    SeatCounter,
)

logger = logging.getLogger(__name__)


class RideInventoryManager:
    def __init__(self, session: AsyncSession, max_retries: int | None = None):
        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)
        self.max_retries = max_retries or settings.inventory_max_retries

    async def _counter(self, ride_id: int) -> SeatCounter:
        counter = await self.rides.get_seat_counter(ride_id)
        if counter is None:
            raise NotFound(f"Ride {ride_id} not found")
        return counter

    async def reserve(self, ride_id: int, seats: int) -> None:
        if seats < 1:
            raise InvalidBookingRequest("At least one seat must be requested")

        for attempt in range(1, self.max_retries + 1):
            counter = await self._counter(ride_id)
            if counter.status != RideStatus.UPCOMING:
                raise RideNotBookable(
                    f"Ride {ride_id} is {counter.status.value.lower()}"
                )
            if counter.seats_available < seats:
                raise SeatsUnavailable(
                    f"Only {counter.seats_available} seat(s) left on this ride"
                )
            if await self.rides.compare_and_set_seats(
                ride_id,
                counter.version,
                seats_available=counter.seats_available - seats,
                seats_total=counter.seats_total,
            ):
                logger.debug("Reserved %d seat(s) on ride %d", seats, ride_id)
                return
            logger.debug("Seat CAS conflict on ride %d (attempt %d)", ride_id, attempt)

        raise SeatsUnavailable("Seats are in high demand on this ride; please retry")

    async def release(self, ride_id: int, seats: int) -> None:
        for attempt in range(1, self.max_retries + 1):
            counter = await self._counter(ride_id)
            available = counter.seats_available + seats
            if available > counter.seats_total:
                logger.warning(
                    "Release of %d seat(s) would overflow ride %d (%d/%d); clamping",
                    seats, ride_id, counter.seats_available, counter.seats_total,
                )
                available = counter.seats_total
            if await self.rides.compare_and_set_seats(
                ride_id,
                counter.version,
                seats_available=available,
                seats_total=counter.seats_total,
            ):
                logger.debug("Released %d seat(s) on ride %d", seats, ride_id)
                return
            logger.debug("Seat CAS conflict on ride %d (attempt %d)", ride_id, attempt)

        raise InventoryContention(f"Could not release seats on ride {ride_id}")

    async def grow(self, ride_id: int, delta: int) -> None:
        """Change capacity by *delta*; booked seats are never taken away."""
        if delta == 0:
            return
        for attempt in range(1, self.max_retries + 1):
            counter = await self._counter(ride_id)
            snapshot = Ride(
                seats_total=counter.seats_total,
                seats_available=counter.seats_available,
            )
            new_total = counter.seats_total + delta
            if new_total < snapshot.seats_committed:
                raise InvalidDelta(
                    f"Cannot reduce seats below {snapshot.seats_committed} (already booked)"
                )
            if await self.rides.compare_and_set_seats(
                ride_id,
                counter.version,
                seats_available=counter.seats_available + delta,
                seats_total=new_total,
            ):
                logger.info("Ride %d capacity changed by %+d", ride_id, delta)
                return
            logger.debug("Seat CAS conflict on ride %d (attempt %d)", ride_id, attempt)

        raise InventoryContention(f"Could not change capacity of ride {ride_id}")

    async def reconcile(self, ride_id: int) -> int:
        """Recompute ``seats_available`` from the bookings holding seats."""
        for attempt in range(1, self.max_retries + 1):
            counter = await self._counter(ride_id)
            held = await self.bookings.seats_held(ride_id)
            total = max(counter.seats_total, held)
            available = total - held
            if (total, available) == (counter.seats_total, counter.seats_available):
                return available
            if await self.rides.compare_and_set_seats(
                ride_id, counter.version, seats_available=available, seats_total=total
            ):
                logger.warning(
                    "Reconciled ride %d: %d/%d -> %d/%d",
                    ride_id, counter.seats_available, counter.seats_total,
                    available, total,
                )
                return available

        raise InventoryContention(f"Could not reconcile ride {ride_id}")
