"""Listings and bookings with status checks, CAS versions and active-booking index.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_BOOKING = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    op.create_table(
        "listings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("listing_type", sa.String(20), nullable=False, server_default="Apartment"),
        sa.Column("rent_or_sale", sa.String(10), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("admin_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("lock_reason", sa.String(500), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price > 0", name="check_listing_price_positive"),
        sa.CheckConstraint("rent_or_sale IN ('Rent', 'Sale')", name="check_listing_rent_or_sale"),
        sa.CheckConstraint(
            "status IN ('active', 'pending', 'sold', 'rented', 'inactive')",
            name="check_listing_status",
        ),
        sa.CheckConstraint(
            "listing_type IN ('Room', 'Apartment', 'House', 'Villa', 'Condo')",
            name="check_listing_type",
        ),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    # Public browse filters on kind + availability and sorts by recency
    op.create_index("ix_listings_browse", "listings", ["rent_or_sale", "status", "created_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("listing_id", sa.String(36), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("booking_type", sa.String(10), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=True),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_price"),
        sa.CheckConstraint("booking_type IN ('Rent', 'Sale')", name="check_booking_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'expired', 'property_deleted')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_listing_id", "bookings", ["listing_id"])
    # Expiry sweeper: WHERE status = 'pending' AND expires_at < now()
    op.create_index("ix_bookings_status_expires", "bookings", ["status", "expires_at"])
    # At most one live booking per user per listing; cancelled/expired rows don't count
    op.create_index(
        "uq_bookings_active_user_listing",
        "bookings",
        ["user_id", "listing_id"],
        unique=True,
        postgresql_where=ACTIVE_BOOKING,
        sqlite_where=ACTIVE_BOOKING,
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("listings")
