"""
Lifecycle event publisher (transactional outbox).

Events are written to ``outbox_events`` in the same transaction as the
state change they describe, so a committed transition always has its
event and a rolled-back one never does.  The outbox worker forwards them
to the event sink afterwards.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import as_utc
from carpool.domain.enums import EventType
from carpool.infrastructure.models import (
    BookingModel,
    DriverApplicationModel,
    OutboxEventModel,
    RideModel,
    RideWishModel,
)
from carpool.infrastructure.repositories import OutboxRepository

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self, session: AsyncSession):
        self.outbox = OutboxRepository(session)

    async def publish(
        self, event_type: EventType, aggregate_id: Any, payload: dict[str, Any]
    ) -> OutboxEventModel:
        event = await self.outbox.add(
            OutboxEventModel(
                event_type=event_type.value,
                aggregate_id=str(aggregate_id),
                payload=payload,
            )
        )
        logger.debug("Queued %s for %s", event_type.value, aggregate_id)
        return event


# ── Payload builders ──────────────────────────────────────────────────


def ride_payload(ride: RideModel) -> dict[str, Any]:
    return {
        "ride_id": ride.id,
        "driver_id": ride.driver_id,
        "departure_location": ride.departure_location,
        "arrival_location": ride.arrival_location,
        "departure_time": as_utc(ride.departure_time).isoformat(),
        "seats_available": ride.seats_available,
        "price_per_seat": ride.price_per_seat,
        "currency": ride.currency,
    }


def booking_payload(booking: BookingModel, ride: RideModel) -> dict[str, Any]:
    payload = {
        "booking_id": booking.id,
        "booking_reference": booking.reference,
        "ride_id": ride.id,
        "driver_id": ride.driver_id,
        "passenger_id": booking.passenger_id,
        "seats_booked": booking.seats_booked,
        "total_paid": booking.total_paid,
        "currency": ride.currency,
        "departure_location": ride.departure_location,
        "arrival_location": ride.arrival_location,
        "departure_time": as_utc(ride.departure_time).isoformat(),
        "traveller_kind": booking.traveller_kind.value,
    }
    if booking.third_party_gender is not None:
        payload["third_party"] = {
            "gender": booking.third_party_gender.value,
            "age_group": booking.third_party_age_group,
            "special_needs": booking.third_party_special_needs,
        }
    return payload


def wish_payload(wish: RideWishModel) -> dict[str, Any]:
    return {
        "wish_id": wish.id,
        "user_id": wish.user_id,
        "departure_location": wish.departure_location,
        "arrival_location": wish.arrival_location,
        "desired_date": wish.desired_date.isoformat(),
        "desired_time": wish.desired_time.isoformat() if wish.desired_time else None,
        "passengers_count": wish.passengers_count,
    }


def application_payload(application: DriverApplicationModel) -> dict[str, Any]:
    return {
        "application_id": application.id,
        "user_id": application.user_id,
        "status": application.status.value,
        "first_name": application.first_name,
        "surname": application.surname,
        "home_area": application.home_area,
        "car_make": application.car_make,
        "car_model": application.car_model,
        "years_driving_experience": application.years_driving_experience,
        "admin_notes": application.admin_notes,
        "reviewed_by": application.reviewed_by,
    }
