"""
Booking State Machine
=====================

Drives every booking from request to a terminal status and applies the
side effects of each transition (seat inventory, payment, events).

Units of work
-------------
Payment calls never run inside an open transaction.  Each operation
commits at its stage boundaries:

* request:  reserve seats | commit | authorize | insert booking + event | commit
* accept:   claim booking | commit | capture | confirm + event | commit
* release:  status CAS + scheduled void/refund + seat release + event | commit
            | execute void/refund | commit

A void or refund that fails stays PENDING in the payment ledger and is
retried by the outbox worker with the same idempotency key.

Guards
------
Every transition re-reads the booking and applies through a
compare-and-set on ``(status, version)``.  The loser of any race gets
``StaleBookingState``.  Acceptance first *claims* the booking (version
bump plus ``pending_action``) so a reject or cancel racing the capture
loses; a claim older than ``settings.claim_ttl_seconds`` counts as
abandoned.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.clock import Clock, as_utc, utcnow
from carpool.domain.compatibility import CompatibilityGate, get_policy
from carpool.domain.entities import (
    Ride,
    SelfTraveller,
    ThirdPartyTraveller,
    Traveller,
    next_booking_status,
)
from carpool.domain.enums import (
    BookingEvent,
    BookingStatus,
    EventType,
    PaymentKind,
    PaymentOperationStatus,
    RideStatus,
)
from carpool.domain.errors import (
    CaptureFailed,
    IncompatibleRide,
    InvalidBookingRequest,
    InvalidStateTransition,
    NotFound,
    NotOwner,
    NotYetDeparted,
    RideNotBookable,
    StaleBookingState,
)
from carpool.domain.settlement import (
    commission_split,
    driver_cancellation_refund,
    passenger_cancellation_refund,
)
from carpool.infrastructure.models import BookingModel, RideModel
from carpool.infrastructure.payments import PaymentGateway
from carpool.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    UserRepository,
)
from carpool.services.events import EventPublisher, booking_payload, ride_payload
from carpool.services.inventory import RideInventoryManager
from carpool.services.payments import PaymentOrchestrator, idempotency_key as payment_key
from carpool.services.profiles import ride_company, user_party
from carpool.services.wishes import WishMatchingEngine

logger = logging.getLogger(__name__)

CAPTURE_ACTION = "capture"

_RELEASE_EVENTS = {
    BookingStatus.REJECTED: EventType.BOOKING_REJECTED,
    BookingStatus.CANCELLED_BY_PASSENGER: EventType.BOOKING_CANCELLED_BY_PASSENGER,
    BookingStatus.CANCELLED_BY_DRIVER: EventType.BOOKING_CANCELLED_BY_DRIVER,
}


def default_gate() -> CompatibilityGate:
    return CompatibilityGate(get_policy(settings.compatibility_policy))


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        gate: Optional[CompatibilityGate] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)
        self.inventory = RideInventoryManager(session)
        self.payments = PaymentOrchestrator(session, gateway, clock=clock)
        self.events = EventPublisher(session)
        self.gate = gate or default_gate()
        self.wishes = WishMatchingEngine(session, self.gate, clock=clock)
        self.clock = clock

    # ── Loading ───────────────────────────────────────────────────

    async def _ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_fresh(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        return ride

    async def _booking(self, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_fresh(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking

    def _claim_is_live(self, booking: BookingModel) -> bool:
        if booking.pending_action is None or booking.claimed_at is None:
            return False
        age = self.clock() - as_utc(booking.claimed_at)
        return age < timedelta(seconds=settings.claim_ttl_seconds)

    async def _captured(self, reference: str) -> bool:
        op = await self.payments.ledger.get_by_key(
            payment_key(reference, PaymentKind.CAPTURE)
        )
        return op is not None and op.status == PaymentOperationStatus.SUCCEEDED

    # ── Request ───────────────────────────────────────────────────

    async def request_booking(
        self,
        ride_id: int,
        passenger_id: int,
        seats: int,
        traveller: Traveller = SelfTraveller(),
        idempotency_key: Optional[str] = None,
    ) -> BookingModel:
        if idempotency_key:
            existing = await self.bookings.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                return existing

        if seats < 1:
            raise InvalidBookingRequest("At least one seat must be requested")
        ride = await self._ride(ride_id)
        if ride.status != RideStatus.UPCOMING:
            raise RideNotBookable(f"Ride {ride_id} is {ride.status.value.lower()}")
        if as_utc(ride.departure_time) <= self.clock():
            raise RideNotBookable(f"Ride {ride_id} has already departed")
        if passenger_id == ride.driver_id:
            raise InvalidBookingRequest("Drivers cannot book their own ride")

        passenger = await self.users.get_by_id(passenger_id)
        if passenger is None:
            raise NotFound(f"User {passenger_id} not found")
        driver = await self.users.get_by_id(ride.driver_id)
        if driver is None:
            raise NotFound(f"Driver {ride.driver_id} not found")
        if not self.gate.is_compatible(
            user_party(traveller, passenger), ride_company(ride, driver)
        ):
            raise IncompatibleRide()

        total = seats * ride.price_per_seat
        await self.inventory.reserve(ride_id, seats)
        await self.session.commit()

        reference = str(uuid.uuid4())
        try:
            handle = await self.payments.authorize(total, reference)
        except Exception:
            await self.inventory.release(ride_id, seats)
            await self.session.commit()
            raise

        third_party = traveller if isinstance(traveller, ThirdPartyTraveller) else None
        try:
            booking = await self.bookings.create(
                BookingModel(
                    reference=reference,
                    ride_id=ride_id,
                    passenger_id=passenger_id,
                    traveller_kind=traveller.kind,
                    third_party_gender=third_party.gender if third_party else None,
                    third_party_age_group=third_party.age_group if third_party else None,
                    third_party_special_needs=(
                        third_party.special_needs if third_party else None
                    ),
                    seats_booked=seats,
                    total_paid=total,
                    payment_handle=handle,
                    status=BookingStatus.PENDING_DRIVER,
                    version=0,
                    idempotency_key=idempotency_key,
                )
            )
            await self.events.publish(
                EventType.BOOKING_REQUESTED, booking.id, booking_payload(booking, ride)
            )
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            logger.warning("Booking insert for %s failed; voiding hold", reference)
            op = await self.payments.schedule_void(handle, reference)
            await self.inventory.release(ride_id, seats)
            await self.session.commit()
            await self.payments.execute(op)
            await self.session.commit()
            if isinstance(exc, IntegrityError) and idempotency_key:
                existing = await self.bookings.get_by_idempotency_key(idempotency_key)
                if existing is not None:
                    return existing
            raise

        ride = await self._ride(ride_id)
        status = ride.status
        if status != RideStatus.UPCOMING:
            # Cancelled before this booking was visible to the fan-out.
            booking_id = booking.id
            booking = await self._booking(booking_id)
            if booking.status == BookingStatus.PENDING_DRIVER:
                try:
                    await self._release(
                        booking, ride, BookingEvent.DRIVER_CANCEL_RIDE, 0
                    )
                except StaleBookingState:
                    await self.session.rollback()
                    logger.info("Booking %d already settled by the cancellation", booking_id)
            raise RideNotBookable(f"Ride {ride_id} is {status.value.lower()}")

        logger.info(
            "Booking %d requested: %d seat(s) on ride %d for %d",
            booking.id, seats, ride_id, total,
        )
        return await self._booking(booking.id)

    # ── Driver decisions ──────────────────────────────────────────

    async def accept_booking(self, booking_id: int, driver_id: int) -> BookingModel:
        booking = await self._booking(booking_id)
        ride = await self._ride(booking.ride_id)
        if ride.driver_id != driver_id:
            raise NotOwner()
        if (
            booking.status != BookingStatus.PENDING_DRIVER
            or ride.status != RideStatus.UPCOMING
            or self._claim_is_live(booking)
        ):
            raise StaleBookingState()
        target = next_booking_status(booking.status, BookingEvent.DRIVER_ACCEPT)

        version = booking.version
        reference = booking.reference
        handle = booking.payment_handle
        total = booking.total_paid

        claimed = await self.bookings.compare_and_set(
            booking_id,
            expected_status=BookingStatus.PENDING_DRIVER,
            expected_version=version,
            pending_action=CAPTURE_ACTION,
            claimed_at=self.clock(),
        )
        if not claimed:
            raise StaleBookingState()
        await self.session.commit()
        claimed_version = version + 1

        try:
            await self.payments.capture(handle, reference, total)
        except CaptureFailed:
            await self.bookings.compare_and_set(
                booking_id,
                expected_status=BookingStatus.PENDING_DRIVER,
                expected_version=claimed_version,
                pending_action=None,
                claimed_at=None,
            )
            await self.session.commit()
            raise

        ride = await self._ride(booking.ride_id)
        if ride.status != RideStatus.UPCOMING:
            # Ride cancelled while capturing; the driver-cancel fan-out
            # skipped this claimed booking, so settle it here.
            booking = await self._booking(booking_id)
            await self._release(
                booking, ride, BookingEvent.DRIVER_CANCEL_RIDE, total
            )
            raise StaleBookingState("The ride was cancelled during acceptance")

        rate = Decimal(str(settings.commission_rate))
        commission, payout = commission_split(total, rate)
        confirmed = await self.bookings.compare_and_set(
            booking_id,
            expected_status=BookingStatus.PENDING_DRIVER,
            expected_version=claimed_version,
            status=target,
            commission_rate=rate,
            commission_amount=commission,
            driver_payout_amount=payout,
            accepted_at=self.clock(),
            pending_action=None,
            claimed_at=None,
        )
        if not confirmed:
            logger.error(
                "Booking %d changed after capture; refunding %d", booking_id, total
            )
            op = await self.payments.schedule_refund(handle, total, reference)
            await self.session.commit()
            await self.payments.execute(op)
            await self.session.commit()
            raise StaleBookingState()

        booking = await self._booking(booking_id)
        await self.events.publish(
            EventType.BOOKING_ACCEPTED,
            booking_id,
            {
                **booking_payload(booking, ride),
                "commission_amount": commission,
                "driver_payout_amount": payout,
            },
        )
        await self.wishes.fulfil_for_booking(booking, ride)
        await self.session.commit()
        logger.info(
            "Booking %d confirmed: commission %d, payout %d",
            booking_id, commission, payout,
        )
        return booking

    async def reject_booking(self, booking_id: int, driver_id: int) -> BookingModel:
        booking = await self._booking(booking_id)
        ride = await self._ride(booking.ride_id)
        if ride.driver_id != driver_id:
            raise NotOwner()
        if booking.status != BookingStatus.PENDING_DRIVER or self._claim_is_live(booking):
            raise StaleBookingState()
        await self._release(booking, ride, BookingEvent.DRIVER_REJECT, 0)
        return await self._booking(booking_id)

    # ── Cancellations ─────────────────────────────────────────────

    async def cancel_booking_as_passenger(self, booking_id: int, passenger_id: int) -> int:
        """Cancel on the passenger's behalf; returns the refund in minor units."""
        booking = await self._booking(booking_id)
        if booking.passenger_id != passenger_id:
            raise NotOwner()
        ride = await self._ride(booking.ride_id)

        if booking.status == BookingStatus.PENDING_DRIVER:
            if self._claim_is_live(booking):
                raise StaleBookingState()
            refund = 0
        elif booking.status == BookingStatus.CONFIRMED:
            if ride.status != RideStatus.UPCOMING:
                raise StaleBookingState()
            refund = passenger_cancellation_refund(
                booking.total_paid,
                as_utc(ride.departure_time),
                self.clock(),
                cutoff_hours=settings.refund_cutoff_hours,
                partial_rate=Decimal(str(settings.partial_refund_rate)),
            )
        else:
            raise StaleBookingState()

        return await self._release(booking, ride, BookingEvent.PASSENGER_CANCEL, refund)

    async def _release(
        self,
        booking: BookingModel,
        ride: RideModel,
        event: BookingEvent,
        refund: int,
    ) -> int:
        """Apply a seat-releasing transition and settle its payment.

        A booking that was never captured has its hold voided; a captured
        one is refunded *refund*.  Returns the refund recorded.
        """
        current = booking.status
        target = next_booking_status(current, event)
        booking_id = booking.id
        reference = booking.reference
        handle = booking.payment_handle
        captured = await self._captured(reference)
        if current == BookingStatus.PENDING_DRIVER and captured:
            refund = booking.total_paid
        elif not captured:
            refund = 0
        payload = {**booking_payload(booking, ride), "refund_amount": refund}
        now = self.clock()

        values = {"status": target, "pending_action": None, "claimed_at": None}
        if target != BookingStatus.REJECTED:
            values.update(cancellation_refund_amount=refund, cancelled_at=now)
        applied = await self.bookings.compare_and_set(
            booking_id,
            expected_status=current,
            expected_version=booking.version,
            **values,
        )
        if not applied:
            raise StaleBookingState()

        if captured:
            op = await self.payments.schedule_refund(handle, refund, reference)
        else:
            op = await self.payments.schedule_void(handle, reference)
        await self.inventory.release(booking.ride_id, booking.seats_booked)
        await self.events.publish(_RELEASE_EVENTS[target], booking_id, payload)
        await self.session.commit()
        logger.info("Booking %d -> %s (refund %d)", booking_id, target.value, refund)

        if not await self.payments.execute(op):
            logger.warning(
                "%s for booking %d left pending for retry", op.kind.value, booking_id
            )
        await self.session.commit()
        return refund

    async def cancel_ride_as_driver(self, ride_id: int, driver_id: int) -> int:
        """Cancel the ride and every booking holding seats on it.

        Each booking settles in its own unit of work.  A booking that
        fails is left as it was and the first error is re-raised once the
        rest are done; calling again on the cancelled ride picks it up.
        Returns the number of bookings cancelled by this call.
        """
        ride = await self._ride(ride_id)
        if ride.driver_id != driver_id:
            raise NotOwner()
        if ride.status == RideStatus.COMPLETED:
            raise InvalidStateTransition("A completed ride cannot be cancelled")

        if ride.status == RideStatus.UPCOMING:
            Ride(status=ride.status).transition_to(RideStatus.CANCELLED)
            if not await self.rides.transition_status(
                ride_id, RideStatus.UPCOMING, RideStatus.CANCELLED
            ):
                raise StaleBookingState("The ride changed while cancelling")
            ride = await self._ride(ride_id)
            await self.events.publish(EventType.RIDE_CANCELLED, ride_id, ride_payload(ride))
            await self.session.commit()
            logger.info("Ride %d cancelled by driver %d", ride_id, driver_id)

        affected = [
            b.id
            for b in await self.bookings.get_for_ride(
                ride_id, (BookingStatus.PENDING_DRIVER, BookingStatus.CONFIRMED)
            )
        ]
        cancelled = 0
        failure: Optional[Exception] = None
        for booking_id in affected:
            try:
                booking = await self._booking(booking_id)
                if booking.status not in (
                    BookingStatus.PENDING_DRIVER,
                    BookingStatus.CONFIRMED,
                ) or self._claim_is_live(booking):
                    continue
                ride = await self._ride(ride_id)
                await self._release(
                    booking,
                    ride,
                    BookingEvent.DRIVER_CANCEL_RIDE,
                    driver_cancellation_refund(booking.total_paid),
                )
                cancelled += 1
            except StaleBookingState:
                await self.session.rollback()
                logger.info("Booking %d changed during ride cancellation", booking_id)
            except Exception as exc:
                await self.session.rollback()
                logger.exception("Failed to cancel booking %d of ride %d", booking_id, ride_id)
                if failure is None:
                    failure = exc

        if failure is not None:
            raise failure
        return cancelled

    # ── Completion ────────────────────────────────────────────────

    async def complete_ride(self, ride_id: int, driver_id: int) -> int:
        """Mark a departed ride and its confirmed bookings completed."""
        ride = await self._ride(ride_id)
        if ride.driver_id != driver_id:
            raise NotOwner()
        if self.clock() < as_utc(ride.departure_time):
            raise NotYetDeparted()
        if ride.status == RideStatus.CANCELLED:
            raise InvalidStateTransition("A cancelled ride cannot be completed")

        if ride.status == RideStatus.UPCOMING:
            if await self.rides.transition_status(
                ride_id, RideStatus.UPCOMING, RideStatus.COMPLETED
            ):
                ride = await self._ride(ride_id)
                await self.events.publish(
                    EventType.RIDE_COMPLETED, ride_id, ride_payload(ride)
                )

        completed = 0
        now = self.clock()
        for booking in await self.bookings.get_for_ride(
            ride_id, (BookingStatus.CONFIRMED,)
        ):
            target = next_booking_status(booking.status, BookingEvent.RIDE_COMPLETE)
            payload = booking_payload(booking, ride)
            if await self.bookings.compare_and_set(
                booking.id,
                expected_status=booking.status,
                expected_version=booking.version,
                status=target,
                completed_at=now,
            ):
                completed += 1
                await self.events.publish(EventType.BOOKING_COMPLETED, booking.id, payload)

        await self.session.commit()
        logger.info("Ride %d completed with %d booking(s)", ride_id, completed)
        return completed

    async def get_booking(self, booking_id: int) -> BookingModel:
        return await self._booking(booking_id)
