"""
Ride wish endpoints
===================

POST /api/v1/wishes            -- register a standing ride alert
GET  /api/v1/wishes/{wish_id}  -- wish status
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    DriverCandidateResponse,
    WishCreatedResponse,
    WishCreateRequest,
    WishResponse,
)
from carpool.config import settings
from carpool.domain.clock import Clock
from carpool.domain.errors import NotFound
from carpool.domain.wishes import is_expired
from carpool.infrastructure.repositories import RideWishRepository
from carpool.services.bookings import default_gate
from carpool.services.wishes import WishMatchingEngine

router = APIRouter(prefix="/wishes", tags=["wishes"])


def _wish_response(wish, clock: Clock) -> WishResponse:
    response = WishResponse.model_validate(wish)
    response.expired = is_expired(wish.desired_date, clock().date())
    return response


@router.post(
    "",
    status_code=201,
    response_model=WishCreatedResponse,
    summary="Create a ride wish",
    description="Local approved drivers who could serve the wish are notified.",
)
@limiter.limit(settings.rate_limit)
async def create_wish(
    request: Request,
    body: WishCreateRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    engine = WishMatchingEngine(db, default_gate(), clock=clock)
    wish, candidates = await engine.create_wish(
        body.user_id,
        body.departure_location,
        body.arrival_location,
        body.desired_date,
        desired_time=body.desired_time,
        passengers_count=body.passengers_count,
        traveller=body.traveller.to_domain(),
    )
    return WishCreatedResponse(
        wish=_wish_response(wish, clock),
        driver_candidates=[
            DriverCandidateResponse.model_validate(c) for c in candidates
        ],
    )


@router.get("/{wish_id}", response_model=WishResponse, summary="Get a ride wish")
@limiter.limit(settings.rate_limit)
async def get_wish(
    request: Request,
    wish_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    wish = await RideWishRepository(db).get_by_id(wish_id)
    if wish is None:
        raise NotFound(f"Wish {wish_id} not found")
    return _wish_response(wish, clock)
