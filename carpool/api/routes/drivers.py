"""
Driver application endpoints
============================

POST /api/v1/drivers/applications                   -- apply to become a driver
GET  /api/v1/drivers/applications/{application_id}  -- application status
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import DriverApplicationRequest, DriverApplicationResponse
from carpool.config import settings
from carpool.domain.clock import Clock
from carpool.services.drivers import DriverApplicationService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "/applications",
    status_code=201,
    response_model=DriverApplicationResponse,
    summary="Apply to become a driver",
    description="The application waits for an administrator's review.",
)
@limiter.limit(settings.rate_limit)
async def submit_application(
    request: Request,
    body: DriverApplicationRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await DriverApplicationService(db, clock=clock).submit_application(
        body.user_id,
        body.first_name,
        body.surname,
        body.car_make,
        body.car_model,
        body.years_driving_experience,
        body.has_drivers_license,
        body.car_insured,
        body.has_mot,
        home_area=body.home_area,
    )


@router.get(
    "/applications/{application_id}",
    response_model=DriverApplicationResponse,
    summary="Get a driver application",
)
@limiter.limit(settings.rate_limit)
async def get_application(
    request: Request,
    application_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await DriverApplicationService(db).get_application(application_id)
