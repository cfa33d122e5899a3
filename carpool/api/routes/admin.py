"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                      -- health check with backlog sizes
POST /api/v1/admin/rides/{ride_id}/reconcile   -- recompute seats from bookings
GET  /api/v1/admin/driver-applications         -- review queue
POST /api/v1/admin/driver-applications/{id}/approve
POST /api/v1/admin/driver-applications/{id}/reject
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ApplicationReviewRequest,
    DriverApplicationResponse,
    HealthResponse,
    RideResponse,
)
from carpool.config import settings
from carpool.domain.clock import Clock
from carpool.domain.enums import DriverApplicationStatus
from carpool.infrastructure.repositories import (
    OutboxRepository,
    PaymentOperationRepository,
)
from carpool.services.drivers import DriverApplicationService
from carpool.services.rides import RideService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    return HealthResponse(
        undispatched_events=await OutboxRepository(db).count_undispatched(),
        pending_payment_operations=await PaymentOperationRepository(db).count_pending(),
    )


@router.post(
    "/rides/{ride_id}/reconcile",
    response_model=RideResponse,
    summary="Reconcile a ride's seat counter",
    description=(
        "Recomputes seats available from the bookings holding seats, "
        "repairing seats stranded by an interrupted booking request."
    ),
)
@limiter.limit(settings.rate_limit)
async def reconcile_ride(
    request: Request,
    ride_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await RideService(db).reconcile_seats(ride_id)


@router.get(
    "/driver-applications",
    response_model=list[DriverApplicationResponse],
    summary="List driver applications",
    description="Newest first, optionally filtered by status.",
)
@limiter.limit(settings.rate_limit)
async def list_driver_applications(
    request: Request,
    admin_id: int,
    status: Optional[DriverApplicationStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    return await DriverApplicationService(db).list_applications(admin_id, status)


@router.post(
    "/driver-applications/{application_id}/approve",
    response_model=DriverApplicationResponse,
    summary="Approve a driver application",
    description="The applicant becomes an approved driver and may post rides.",
)
@limiter.limit(settings.rate_limit)
async def approve_driver_application(
    request: Request,
    application_id: int,
    body: ApplicationReviewRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await DriverApplicationService(db, clock=clock).approve_application(
        application_id, body.admin_id, body.admin_notes
    )


@router.post(
    "/driver-applications/{application_id}/reject",
    response_model=DriverApplicationResponse,
    summary="Reject a driver application",
)
@limiter.limit(settings.rate_limit)
async def reject_driver_application(
    request: Request,
    application_id: int,
    body: ApplicationReviewRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await DriverApplicationService(db, clock=clock).reject_application(
        application_id, body.admin_id, body.admin_notes
    )
