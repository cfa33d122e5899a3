"""Initial schema: users, rides, bookings, wishes, payment ledger, outbox.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "gender": ("MALE", "FEMALE", "UNDISCLOSED"),
    "travelstatus": ("SOLO", "COUPLE"),
    "luggagesize": ("NONE", "SMALL", "MEDIUM", "LARGE"),
    "ridestatus": ("UPCOMING", "COMPLETED", "CANCELLED"),
    "bookingstatus": (
        "PENDING_DRIVER",
        "CONFIRMED",
        "REJECTED",
        "CANCELLED_BY_PASSENGER",
        "CANCELLED_BY_DRIVER",
        "COMPLETED",
    ),
    "travellerkind": ("SELF", "THIRD_PARTY"),
    "wishstatus": ("ACTIVE", "FULFILLED"),
    "paymentkind": ("AUTHORIZE", "CAPTURE", "VOID", "REFUND"),
    "paymentoperationstatus": ("PENDING", "SUCCEEDED"),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created once up front; several tables share "gender"
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("gender", _enum("gender"), nullable=False, server_default="UNDISCLOSED"),
        sa.Column("travel_status", _enum("travelstatus"), nullable=False, server_default="SOLO"),
        sa.Column("partner_name", sa.String(120), nullable=True),
        sa.Column("home_area", sa.String(120), nullable=True),
        sa.Column("is_approved_driver", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rating", sa.Float, default=5.0),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_users_driver_area", "users", ["is_approved_driver", "home_area"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("departure_location", sa.String(200), nullable=False),
        sa.Column("arrival_location", sa.String(200), nullable=False),
        sa.Column("departure_spot", sa.String(200), nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seats_total", sa.Integer, nullable=False),
        sa.Column("seats_available", sa.Integer, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("price_per_seat", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="GBP"),
        sa.Column("vehicle_make", sa.String(60), nullable=True),
        sa.Column("vehicle_model", sa.String(60), nullable=True),
        sa.Column("vehicle_color", sa.String(30), nullable=True),
        sa.Column("luggage_size", _enum("luggagesize"), nullable=False, server_default="NONE"),
        sa.Column("luggage_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("occupant_males", sa.Integer, nullable=False, server_default="0"),
        sa.Column("occupant_females", sa.Integer, nullable=False, server_default="0"),
        sa.Column("occupant_couples", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", _enum("ridestatus"), nullable=False, server_default="UPCOMING"),
        *_timestamps(),
        sa.CheckConstraint("seats_available >= 0", name="ck_rides_seats_nonneg"),
        sa.CheckConstraint(
            "seats_available <= seats_total", name="ck_rides_seats_within_total"
        ),
        sa.CheckConstraint("price_per_seat >= 0", name="ck_rides_price_nonneg"),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_route", "rides", ["departure_location", "arrival_location"])
    op.create_index("idx_rides_departure", "rides", ["departure_time"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("reference", sa.String(36), unique=True, nullable=False),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("traveller_kind", _enum("travellerkind"), nullable=False, server_default="SELF"),
        sa.Column("third_party_gender", _enum("gender"), nullable=True),
        sa.Column("third_party_age_group", sa.String(30), nullable=True),
        sa.Column("third_party_special_needs", sa.Text, nullable=True),
        sa.Column("seats_booked", sa.Integer, nullable=False),
        sa.Column("total_paid", sa.Integer, nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("commission_amount", sa.Integer, nullable=True),
        sa.Column("driver_payout_amount", sa.Integer, nullable=True),
        sa.Column("cancellation_refund_amount", sa.Integer, nullable=True),
        sa.Column("payment_handle", sa.String(100), nullable=True),
        sa.Column("status", _enum("bookingstatus"), nullable=False, server_default="PENDING_DRIVER"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pending_action", sa.String(20), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        *_timestamps(),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("seats_booked >= 1", name="ck_bookings_seats_positive"),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_passenger", "bookings", ["passenger_id"])
    op.create_index("idx_bookings_idempotency", "bookings", ["idempotency_key"])

    # ── ride_wishes ───────────────────────────────────────────────────
    op.create_table(
        "ride_wishes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("departure_location", sa.String(200), nullable=False),
        sa.Column("arrival_location", sa.String(200), nullable=False),
        sa.Column("desired_date", sa.Date, nullable=False),
        sa.Column("desired_time", sa.Time, nullable=True),
        sa.Column("passengers_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("traveller_kind", _enum("travellerkind"), nullable=False, server_default="SELF"),
        sa.Column("third_party_gender", _enum("gender"), nullable=True),
        sa.Column("third_party_age_group", sa.String(30), nullable=True),
        sa.Column("status", _enum("wishstatus"), nullable=False, server_default="ACTIVE"),
        sa.Column(
            "fulfilled_booking_id",
            sa.Integer,
            sa.ForeignKey("bookings.id"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_wishes_route_date",
        "ride_wishes",
        ["departure_location", "arrival_location", "desired_date"],
    )
    op.create_index("idx_wishes_status", "ride_wishes", ["status"])
    op.create_index("idx_wishes_user", "ride_wishes", ["user_id"])

    # ── payment_operations ────────────────────────────────────────────
    op.create_table(
        "payment_operations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_reference", sa.String(36), nullable=False),
        sa.Column("kind", _enum("paymentkind"), nullable=False),
        sa.Column("payment_handle", sa.String(100), nullable=True),
        sa.Column("amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=False),
        sa.Column(
            "status",
            _enum("paymentoperationstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_payment_ops_status", "payment_operations", ["status"])
    op.create_index("idx_payment_ops_reference", "payment_operations", ["booking_reference"])

    # ── outbox_events ─────────────────────────────────────────────────
    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(60), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_outbox_dispatched", "outbox_events", ["dispatched_at"])


def downgrade() -> None:
    op.drop_table("outbox_events")
    op.drop_table("payment_operations")
    op.drop_table("ride_wishes")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("users")
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
