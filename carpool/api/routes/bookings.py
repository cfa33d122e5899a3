"""
Booking endpoints
=================

POST /api/v1/bookings                       -- request seats (authorizes payment)
GET  /api/v1/bookings/{booking_id}          -- booking status and settlement
POST /api/v1/bookings/{booking_id}/accept   -- driver accepts (captures)
POST /api/v1/bookings/{booking_id}/reject   -- driver rejects (voids)
POST /api/v1/bookings/{booking_id}/cancel   -- passenger cancels (refund policy)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db, get_gateway
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    CancellationResponse,
    DriverActionRequest,
    PassengerActionRequest,
)
from carpool.config import settings
from carpool.domain.clock import Clock
from carpool.infrastructure.payments import PaymentGateway
from carpool.services.bookings import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _service(db: AsyncSession, gateway: PaymentGateway, clock: Clock) -> BookingService:
    return BookingService(db, gateway, clock=clock)


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Request seats on a ride",
    description=(
        "Reserves the seats and places a payment hold for the total. "
        "The booking waits for the driver's decision."
    ),
)
@limiter.limit(settings.rate_limit)
async def request_booking(
    request: Request,
    body: BookingCreateRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    return await _service(db, gateway, clock).request_booking(
        body.ride_id,
        body.passenger_id,
        body.seats,
        traveller=body.traveller.to_domain(),
        idempotency_key=body.idempotency_key,
    )


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    return await BookingService(db, gateway).get_booking(booking_id)


@router.post(
    "/{booking_id}/accept",
    response_model=BookingResponse,
    summary="Driver accepts a booking",
)
@limiter.limit(settings.rate_limit)
async def accept_booking(
    request: Request,
    booking_id: int,
    body: DriverActionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    return await _service(db, gateway, clock).accept_booking(booking_id, body.driver_id)


@router.post(
    "/{booking_id}/reject",
    response_model=BookingResponse,
    summary="Driver rejects a booking",
)
@limiter.limit(settings.rate_limit)
async def reject_booking(
    request: Request,
    booking_id: int,
    body: DriverActionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    return await _service(db, gateway, clock).reject_booking(booking_id, body.driver_id)


@router.post(
    "/{booking_id}/cancel",
    response_model=CancellationResponse,
    summary="Passenger cancels a booking",
    description=(
        "Pending bookings are released with no charge. Confirmed bookings "
        "are refunded in part when cancelled before the cutoff, else not at all."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: PassengerActionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    service = _service(db, gateway, clock)
    refund = await service.cancel_booking_as_passenger(booking_id, body.passenger_id)
    booking = await service.get_booking(booking_id)
    return CancellationResponse(
        booking_id=booking.id, status=booking.status, refund_amount=refund
    )
