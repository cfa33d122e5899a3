"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``               -- passengers and drivers (profile fields)
* ``driver_applications`` -- requests to become an approved driver
* ``rides``               -- published rides with a versioned seat counter
* ``bookings``            -- seat requests and their settlement fields
* ``ride_wishes``         -- standing passenger ride alerts
* ``payment_operations``  -- authorize / capture / void / refund ledger
* ``outbox_events``       -- lifecycle events awaiting dispatch

Money columns are integer minor units.  ``version`` columns back the
compare-and-set writes on seat counters and booking status.

Indexes
-------
* **B-Tree** on ``status``, foreign keys, route columns and the pending
  rows of the payment ledger and outbox used by the worker.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    func,
)

from .database import Base
from carpool.domain.enums import (
    BookingStatus,
    DriverApplicationStatus,
    Gender,
    LuggageSize,
    PaymentKind,
    PaymentOperationStatus,
    RideStatus,
    TravelStatus,
    TravellerKind,
    WishStatus,
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(40), nullable=True)
    gender = Column(Enum(Gender), default=Gender.UNDISCLOSED, nullable=False)
    travel_status = Column(
        Enum(TravelStatus), default=TravelStatus.SOLO, nullable=False
    )
    partner_name = Column(String(120), nullable=True)
    home_area = Column(String(120), nullable=True)
    is_approved_driver = Column(Boolean, default=False, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    rating = Column(Float, default=5.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_users_driver_area", "is_approved_driver", "home_area"),
    )


class DriverApplicationModel(Base):
    __tablename__ = "driver_applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    first_name = Column(String(60), nullable=False)
    surname = Column(String(60), nullable=False)
    home_area = Column(String(120), nullable=True)

    car_make = Column(String(60), nullable=False)
    car_model = Column(String(60), nullable=False)
    years_driving_experience = Column(Integer, nullable=False)
    has_drivers_license = Column(Boolean, default=False, nullable=False)
    car_insured = Column(Boolean, default=False, nullable=False)
    has_mot = Column(Boolean, default=False, nullable=False)

    status = Column(
        Enum(DriverApplicationStatus),
        default=DriverApplicationStatus.PENDING,
        nullable=False,
    )
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_driver_applications_user", "user_id"),
        Index("idx_driver_applications_status", "status"),
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    departure_location = Column(String(200), nullable=False)
    arrival_location = Column(String(200), nullable=False)
    departure_spot = Column(String(200), nullable=True)
    departure_time = Column(DateTime(timezone=True), nullable=False)

    seats_total = Column(Integer, nullable=False)
    seats_available = Column(Integer, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    price_per_seat = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), default="GBP", nullable=False)

    vehicle_make = Column(String(60), nullable=True)
    vehicle_model = Column(String(60), nullable=True)
    vehicle_color = Column(String(30), nullable=True)
    luggage_size = Column(Enum(LuggageSize), default=LuggageSize.NONE, nullable=False)
    luggage_count = Column(Integer, default=0, nullable=False)

    # Existing occupants, driver excluded
    occupant_males = Column(Integer, default=0, nullable=False)
    occupant_females = Column(Integer, default=0, nullable=False)
    occupant_couples = Column(Integer, default=0, nullable=False)

    status = Column(Enum(RideStatus), default=RideStatus.UPCOMING, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("seats_available >= 0", name="ck_rides_seats_nonneg"),
        CheckConstraint(
            "seats_available <= seats_total", name="ck_rides_seats_within_total"
        ),
        CheckConstraint("price_per_seat >= 0", name="ck_rides_price_nonneg"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_route", "departure_location", "arrival_location"),
        Index("idx_rides_departure", "departure_time"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(36), unique=True, nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    traveller_kind = Column(
        Enum(TravellerKind), default=TravellerKind.SELF, nullable=False
    )
    third_party_gender = Column(Enum(Gender), nullable=True)
    third_party_age_group = Column(String(30), nullable=True)
    third_party_special_needs = Column(Text, nullable=True)

    seats_booked = Column(Integer, nullable=False)
    total_paid = Column(Integer, nullable=False)  # minor units, immutable
    commission_rate = Column(Numeric(5, 4), nullable=True)
    commission_amount = Column(Integer, nullable=True)
    driver_payout_amount = Column(Integer, nullable=True)
    cancellation_refund_amount = Column(Integer, nullable=True)
    payment_handle = Column(String(100), nullable=True)

    status = Column(
        Enum(BookingStatus), default=BookingStatus.PENDING_DRIVER, nullable=False
    )
    version = Column(Integer, default=0, nullable=False)
    pending_action = Column(String(20), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("seats_booked >= 1", name="ck_bookings_seats_positive"),
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_passenger", "passenger_id"),
        Index("idx_bookings_idempotency", "idempotency_key"),
    )


class RideWishModel(Base):
    __tablename__ = "ride_wishes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    departure_location = Column(String(200), nullable=False)
    arrival_location = Column(String(200), nullable=False)
    desired_date = Column(Date, nullable=False)
    desired_time = Column(Time, nullable=True)
    passengers_count = Column(Integer, default=1, nullable=False)

    traveller_kind = Column(
        Enum(TravellerKind), default=TravellerKind.SELF, nullable=False
    )
    third_party_gender = Column(Enum(Gender), nullable=True)
    third_party_age_group = Column(String(30), nullable=True)

    status = Column(Enum(WishStatus), default=WishStatus.ACTIVE, nullable=False)
    fulfilled_booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_wishes_route_date", "departure_location", "arrival_location", "desired_date"),
        Index("idx_wishes_status", "status"),
        Index("idx_wishes_user", "user_id"),
    )


class PaymentOperationModel(Base):
    __tablename__ = "payment_operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_reference = Column(String(36), nullable=False)
    kind = Column(Enum(PaymentKind), nullable=False)
    payment_handle = Column(String(100), nullable=True)
    amount = Column(Integer, nullable=False, default=0)
    idempotency_key = Column(String(64), unique=True, nullable=False)
    status = Column(
        Enum(PaymentOperationStatus),
        default=PaymentOperationStatus.PENDING,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_payment_ops_status", "status"),
        Index("idx_payment_ops_reference", "booking_reference"),
    )


class OutboxEventModel(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(60), nullable=False)
    aggregate_id = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    dispatched_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_outbox_dispatched", "dispatched_at"),)
