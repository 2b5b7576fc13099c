"""
Listing model: a property offered for rent or sale.

Key design decisions:
- `status` mirrors booking state (rented/sold) and admin moderation (inactive)
- `admin_locked` pins the listing: booking transitions never overwrite its status
- `version` column enables optimistic locking for status changes
- Listings referenced by bookings are soft-deleted via `deleted_at`
"""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, Numeric, String, Text

from estate_booking.db.base import Base, TimestampMixin
from estate_booking.models.enums import ListingStatus, ListingType, RentOrSale, sql_in


def new_id() -> str:
    return str(uuid.uuid4())


class Listing(Base, TimestampMixin):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    listing_type = Column(String(20), nullable=False, default=ListingType.APARTMENT.value)
    rent_or_sale = Column(String(10), nullable=False)
    price = Column(Numeric(14, 2), nullable=False)
    status = Column(String(20), nullable=False, default=ListingStatus.ACTIVE.value)
    admin_locked = Column(Boolean, nullable=False, default=False)
    lock_reason = Column(String(500), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("price > 0", name="check_listing_price_positive"),
        CheckConstraint(f"rent_or_sale IN ({sql_in(RentOrSale)})", name="check_listing_rent_or_sale"),
        CheckConstraint(f"status IN ({sql_in(ListingStatus)})", name="check_listing_status"),
        CheckConstraint(f"listing_type IN ({sql_in(ListingType)})", name="check_listing_type"),
        # Public browse: live listings by kind, newest first
        Index("ix_listings_browse", "rent_or_sale", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, owner={self.owner_id}, {self.rent_or_sale}, status={self.status})>"
