"""Driver applications and the admin flag on users.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


STATUSES = ("PENDING", "APPROVED", "REJECTED")


def upgrade() -> None:
    postgresql.ENUM(*STATUSES, name="driverapplicationstatus").create(
        op.get_bind(), checkfirst=True
    )

    op.add_column(
        "users",
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "driver_applications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("first_name", sa.String(60), nullable=False),
        sa.Column("surname", sa.String(60), nullable=False),
        sa.Column("home_area", sa.String(120), nullable=True),
        sa.Column("car_make", sa.String(60), nullable=False),
        sa.Column("car_model", sa.String(60), nullable=False),
        sa.Column("years_driving_experience", sa.Integer, nullable=False),
        sa.Column("has_drivers_license", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("car_insured", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("has_mot", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "status",
            postgresql.ENUM(*STATUSES, name="driverapplicationstatus", create_type=False),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("reviewed_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_driver_applications_user", "driver_applications", ["user_id"])
    op.create_index("idx_driver_applications_status", "driver_applications", ["status"])


def downgrade() -> None:
    op.drop_table("driver_applications")
    op.drop_column("users", "is_admin")
    op.execute("DROP TYPE IF EXISTS driverapplicationstatus")
