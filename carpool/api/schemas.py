"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from carpool.domain.entities import SelfTraveller, ThirdPartyTraveller, Traveller
from carpool.domain.enums import (
    BookingStatus,
    DriverApplicationStatus,
    Gender,
    LuggageSize,
    RideStatus,
    TravellerKind,
    WishStatus,
)


# ── Travellers ────────────────────────────────────────────────────────


class SelfTravellerIn(BaseModel):
    kind: Literal["SELF"] = "SELF"

    def to_domain(self) -> Traveller:
        return SelfTraveller()


class ThirdPartyTravellerIn(BaseModel):
    kind: Literal["THIRD_PARTY"]
    gender: Gender
    age_group: Optional[str] = Field(None, max_length=30)
    special_needs: Optional[str] = Field(None, max_length=500)

    def to_domain(self) -> Traveller:
        return ThirdPartyTraveller(
            gender=self.gender,
            age_group=self.age_group,
            special_needs=self.special_needs,
        )


TravellerIn = Annotated[
    Union[SelfTravellerIn, ThirdPartyTravellerIn], Field(discriminator="kind")
]


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    driver_id: int
    departure_location: str = Field(..., min_length=1, max_length=200)
    arrival_location: str = Field(..., min_length=1, max_length=200)
    departure_time: datetime
    seats_total: int = Field(..., ge=1, le=8)
    price_per_seat: int = Field(..., gt=0, description="Price in minor units (pence).")
    departure_spot: Optional[str] = Field(None, max_length=200)
    vehicle_make: Optional[str] = Field(None, max_length=60)
    vehicle_model: Optional[str] = Field(None, max_length=60)
    vehicle_color: Optional[str] = Field(None, max_length=30)
    luggage_size: LuggageSize = LuggageSize.NONE
    luggage_count: int = Field(0, ge=0, le=10)
    occupant_males: int = Field(0, ge=0)
    occupant_females: int = Field(0, ge=0)
    occupant_couples: int = Field(0, ge=0)


class RideCapacityRequest(BaseModel):
    driver_id: int
    seats_available: int


class DriverActionRequest(BaseModel):
    driver_id: int


class PassengerActionRequest(BaseModel):
    passenger_id: int


class BookingCreateRequest(BaseModel):
    ride_id: int
    passenger_id: int
    seats: int = 1
    traveller: TravellerIn = Field(default_factory=SelfTravellerIn)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class WishCreateRequest(BaseModel):
    user_id: int
    departure_location: str = Field(..., min_length=1, max_length=200)
    arrival_location: str = Field(..., min_length=1, max_length=200)
    desired_date: date
    desired_time: Optional[time] = None
    passengers_count: int = 1
    traveller: TravellerIn = Field(default_factory=SelfTravellerIn)


class DriverApplicationRequest(BaseModel):
    user_id: int
    first_name: str = Field(..., max_length=60)
    surname: str = Field(..., max_length=60)
    home_area: Optional[str] = Field(None, max_length=120)
    car_make: str = Field(..., max_length=60)
    car_model: str = Field(..., max_length=60)
    years_driving_experience: int
    has_drivers_license: bool = False
    car_insured: bool = False
    has_mot: bool = False


class ApplicationReviewRequest(BaseModel):
    admin_id: int
    admin_notes: Optional[str] = Field(None, max_length=1000)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    driver_id: int
    departure_location: str
    arrival_location: str
    departure_spot: Optional[str] = None
    departure_time: datetime
    seats_total: int
    seats_available: int
    price_per_seat: int
    currency: str
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_color: Optional[str] = None
    luggage_size: LuggageSize
    luggage_count: int
    occupant_males: int
    occupant_females: int
    occupant_couples: int
    status: RideStatus

    model_config = {"from_attributes": True}


class RidePostedResponse(BaseModel):
    ride: RideResponse
    matched_wish_ids: list[int] = []


class BookingResponse(BaseModel):
    id: int
    reference: str
    ride_id: int
    passenger_id: int
    traveller_kind: TravellerKind
    third_party_gender: Optional[Gender] = None
    seats_booked: int
    total_paid: int
    commission_rate: Optional[Decimal] = None
    commission_amount: Optional[int] = None
    driver_payout_amount: Optional[int] = None
    cancellation_refund_amount: Optional[int] = None
    status: BookingStatus
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CancellationResponse(BaseModel):
    booking_id: int
    status: BookingStatus
    refund_amount: int


class RideCancellationResponse(BaseModel):
    ride_id: int
    status: RideStatus
    cancelled_bookings: int


class RideCompletionResponse(BaseModel):
    ride_id: int
    status: RideStatus
    completed_bookings: int


class WishResponse(BaseModel):
    id: int
    user_id: int
    departure_location: str
    arrival_location: str
    desired_date: date
    desired_time: Optional[time] = None
    passengers_count: int
    traveller_kind: TravellerKind
    status: WishStatus
    expired: bool = False
    fulfilled_booking_id: Optional[int] = None

    model_config = {"from_attributes": True}


class DriverCandidateResponse(BaseModel):
    driver_id: int
    name: str
    home_area: Optional[str] = None

    model_config = {"from_attributes": True}


class WishCreatedResponse(BaseModel):
    wish: WishResponse
    driver_candidates: list[DriverCandidateResponse] = []


class DriverApplicationResponse(BaseModel):
    id: int
    user_id: int
    first_name: str
    surname: str
    home_area: Optional[str] = None
    car_make: str
    car_model: str
    years_driving_experience: int
    status: DriverApplicationStatus
    admin_notes: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    undispatched_events: Optional[int] = None
    pending_payment_operations: Optional[int] = None


class ErrorResponse(BaseModel):
    detail: str
    code: str
