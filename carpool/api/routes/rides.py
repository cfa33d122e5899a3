"""
Ride endpoints
==============

POST  /api/v1/rides                       -- post a ride (approved drivers)
GET   /api/v1/rides/{ride_id}             -- ride details and seats left
PATCH /api/v1/rides/{ride_id}/capacity    -- change seats on offer
POST  /api/v1/rides/{ride_id}/cancel      -- driver cancels; bookings refunded
POST  /api/v1/rides/{ride_id}/complete    -- driver completes after departure
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db, get_gateway
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    DriverActionRequest,
    RideCancellationResponse,
    RideCapacityRequest,
    RideCompletionResponse,
    RideCreateRequest,
    RidePostedResponse,
    RideResponse,
)
from carpool.config import settings
from carpool.domain.clock import Clock
from carpool.infrastructure.payments import PaymentGateway
from carpool.services.bookings import BookingService
from carpool.services.rides import RideService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RidePostedResponse,
    summary="Post a ride",
    description="Only approved drivers may post. Matching ride wishes are notified.",
)
@limiter.limit(settings.rate_limit)
async def post_ride(
    request: Request,
    body: RideCreateRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ride, matched = await RideService(db, clock=clock).post_ride(**body.model_dump())
    return RidePostedResponse(
        ride=RideResponse.model_validate(ride),
        matched_wish_ids=[wish.id for wish in matched],
    )


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await RideService(db).get_ride(ride_id)


@router.patch(
    "/{ride_id}/capacity",
    response_model=RideResponse,
    summary="Change seats on offer",
    description="Seats already booked cannot be taken away.",
)
@limiter.limit(settings.rate_limit)
async def update_capacity(
    request: Request,
    ride_id: int,
    body: RideCapacityRequest,
    db: AsyncSession = Depends(get_db),
):
    return await RideService(db).update_capacity(
        ride_id, body.driver_id, body.seats_available
    )


@router.post(
    "/{ride_id}/cancel",
    response_model=RideCancellationResponse,
    summary="Cancel a ride",
    description=(
        "Cancels the ride and every pending or confirmed booking on it. "
        "Confirmed passengers are refunded in full; pending holds are voided."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: DriverActionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    service = BookingService(db, gateway, clock=clock)
    cancelled = await service.cancel_ride_as_driver(ride_id, body.driver_id)
    ride = await RideService(db).get_ride(ride_id)
    return RideCancellationResponse(
        ride_id=ride.id, status=ride.status, cancelled_bookings=cancelled
    )


@router.post(
    "/{ride_id}/complete",
    response_model=RideCompletionResponse,
    summary="Complete a ride",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: int,
    body: DriverActionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
):
    service = BookingService(db, gateway, clock=clock)
    completed = await service.complete_ride(ride_id, body.driver_id)
    ride = await RideService(db).get_ride(ride_id)
    return RideCompletionResponse(
        ride_id=ride.id, status=ride.status, completed_bookings=completed
    )
