"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Writes to contended fields (a ride's seat
counter, a booking's status) are compare-and-set statements guarded by a
``version`` column: they report whether they won instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BookingModel,
    DriverApplicationModel,
    OutboxEventModel,
    PaymentOperationModel,
    RideModel,
    RideWishModel,
    UserModel,
)
from carpool.domain.enums import (
    SEAT_HOLDING_STATUSES,
    BookingStatus,
    DriverApplicationStatus,
    PaymentOperationStatus,
    RideStatus,
    WishStatus,
)
from carpool.domain.wishes import same_route


@dataclass(frozen=True)
class SeatCounter:
    seats_total: int
    seats_available: int
    version: int
    status: RideStatus = RideStatus.UPCOMING


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_fresh(self, ride_id: int) -> Optional[RideModel]:
        """Re-read the row, overwriting whatever the session already holds."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_seat_counter(self, ride_id: int) -> Optional[SeatCounter]:
        """Read the counter straight from the row, bypassing the identity map."""
        result = await self.session.execute(
            select(
                RideModel.seats_total,
                RideModel.seats_available,
                RideModel.version,
                RideModel.status,
            ).where(RideModel.id == ride_id)
        )
        row = result.one_or_none()
        return SeatCounter(*row) if row else None

    async def compare_and_set_seats(
        self,
        ride_id: int,
        expected_version: int,
        *,
        seats_available: int,
        seats_total: int,
    ) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.version == expected_version)
            .values(
                seats_available=seats_available,
                seats_total=seats_total,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_status(
        self, ride_id: int, expected: RideStatus, new: RideStatus
    ) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == expected)
            .values(status=new, version=RideModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_upcoming_on_route(
        self, departure_location: str, arrival_location: str
    ) -> list[RideModel]:
        """Upcoming rides on the route, matched the way ``same_route`` does."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status == RideStatus.UPCOMING)
            .order_by(RideModel.id)
        )
        return [
            ride
            for ride in result.scalars().all()
            if same_route(
                ride.departure_location,
                ride.arrival_location,
                departure_location,
                arrival_location,
            )
        ]


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_fresh(self, booking_id: int) -> Optional[BookingModel]:
        """Re-read the row so guards see the latest committed status."""
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def get_for_ride(
        self, ride_id: int, statuses: Iterable[BookingStatus]
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(list(statuses)),
            )
            .order_by(BookingModel.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def seats_held(self, ride_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingModel.seats_booked), 0)).where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(list(SEAT_HOLDING_STATUSES)),
            )
        )
        return int(result.scalar() or 0)

    async def compare_and_set(
        self,
        booking_id: int,
        *,
        expected_status: BookingStatus,
        expected_version: int,
        **values: Any,
    ) -> bool:
        """Apply *values* only if status and version are still as read."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == expected_status,
                BookingModel.version == expected_version,
            )
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class RideWishRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, wish: RideWishModel) -> RideWishModel:
        self.session.add(wish)
        await self.session.flush()
        return wish

    async def get_by_id(self, wish_id: int) -> Optional[RideWishModel]:
        return await self.session.get(RideWishModel, wish_id)

    async def get_active_for_date(self, desired_date: date) -> list[RideWishModel]:
        result = await self.session.execute(
            select(RideWishModel)
            .where(
                RideWishModel.status == WishStatus.ACTIVE,
                RideWishModel.desired_date == desired_date,
            )
            .order_by(RideWishModel.created_at, RideWishModel.id)
        )
        return list(result.scalars().all())

    async def get_active_for_user(self, user_id: int) -> list[RideWishModel]:
        result = await self.session.execute(
            select(RideWishModel).where(
                RideWishModel.user_id == user_id,
                RideWishModel.status == WishStatus.ACTIVE,
            )
        )
        return list(result.scalars().all())

    async def mark_fulfilled(self, wish_id: int, booking_id: int) -> bool:
        result = await self.session.execute(
            update(RideWishModel)
            .where(
                RideWishModel.id == wish_id,
                RideWishModel.status == WishStatus.ACTIVE,
            )
            .values(status=WishStatus.FULFILLED, fulfilled_booking_id=booking_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_approved_drivers(self) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.is_approved_driver.is_(True))
        )
        return list(result.scalars().all())


class DriverApplicationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, application: DriverApplicationModel
    ) -> DriverApplicationModel:
        self.session.add(application)
        await self.session.flush()
        return application

    async def get_fresh(self, application_id: int) -> Optional[DriverApplicationModel]:
        result = await self.session.execute(
            select(DriverApplicationModel)
            .where(DriverApplicationModel.id == application_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_pending_for_user(
        self, user_id: int
    ) -> Optional[DriverApplicationModel]:
        result = await self.session.execute(
            select(DriverApplicationModel).where(
                DriverApplicationModel.user_id == user_id,
                DriverApplicationModel.status == DriverApplicationStatus.PENDING,
            )
        )
        return result.scalars().first()

    async def get_all(
        self, status: Optional[DriverApplicationStatus] = None
    ) -> list[DriverApplicationModel]:
        query = select(DriverApplicationModel).order_by(
            DriverApplicationModel.created_at.desc(), DriverApplicationModel.id.desc()
        )
        if status is not None:
            query = query.where(DriverApplicationModel.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def review(
        self, application_id: int, status: DriverApplicationStatus, **values: Any
    ) -> bool:
        """Move a pending application to *status*; False if already reviewed."""
        result = await self.session.execute(
            update(DriverApplicationModel)
            .where(
                DriverApplicationModel.id == application_id,
                DriverApplicationModel.status == DriverApplicationStatus.PENDING,
            )
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentOperationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, op: PaymentOperationModel) -> PaymentOperationModel:
        self.session.add(op)
        await self.session.flush()
        return op

    async def get_by_key(self, key: str) -> Optional[PaymentOperationModel]:
        result = await self.session.execute(
            select(PaymentOperationModel).where(
                PaymentOperationModel.idempotency_key == key
            )
        )
        return result.scalar_one_or_none()

    async def get_for_reference(self, reference: str) -> list[PaymentOperationModel]:
        result = await self.session.execute(
            select(PaymentOperationModel)
            .where(PaymentOperationModel.booking_reference == reference)
            .order_by(PaymentOperationModel.id)
        )
        return list(result.scalars().all())

    async def count_pending(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(PaymentOperationModel)
            .where(PaymentOperationModel.status == PaymentOperationStatus.PENDING)
        )
        return result.scalar() or 0

    async def get_pending(self, limit: int = 100) -> list[PaymentOperationModel]:
        result = await self.session.execute(
            select(PaymentOperationModel)
            .where(PaymentOperationModel.status == PaymentOperationStatus.PENDING)
            .order_by(PaymentOperationModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())


class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: OutboxEventModel) -> OutboxEventModel:
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_undispatched(self, limit: int = 100) -> list[OutboxEventModel]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(OutboxEventModel.dispatched_at.is_(None))
            .order_by(OutboxEventModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_undispatched(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(OutboxEventModel)
            .where(OutboxEventModel.dispatched_at.is_(None))
        )
        return result.scalar() or 0

    async def mark_dispatched(self, event: OutboxEventModel, at: datetime) -> None:
        event.dispatched_at = at
        event.attempts = (event.attempts or 0) + 1
