"""
Booking model representing a user's request to rent or buy a listing.

Key design decisions:
- Partial unique index on (user_id, listing_id) for pending/confirmed rows
  prevents two active bookings by one user on one listing
- Status field keeps history: nothing is deleted on cancel or expiry
- `version` column makes every status write a compare-and-swap
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text

from estate_booking.db.base import Base, TimestampMixin
from estate_booking.models.enums import BookingStatus, PaymentStatus, RentOrSale, sql_in
from estate_booking.models.listing import new_id

ACTIVE_STATUS_SQL = text("status IN ('pending', 'confirmed')")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    booking_type = Column(String(10), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    duration_days = Column(Integer, nullable=True)
    total_price = Column(Numeric(14, 2), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    payment_status = Column(String(10), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(32), nullable=True)
    payment_reference = Column(String(128), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index(
            "uq_bookings_active_user_listing",
            "user_id",
            "listing_id",
            unique=True,
            postgresql_where=ACTIVE_STATUS_SQL,
            sqlite_where=ACTIVE_STATUS_SQL,
        ),
        # Sweeper scans pending rows by expiry
        Index("ix_bookings_status_expires", "status", "expires_at"),
        CheckConstraint("total_price >= 0", name="check_booking_total_price"),
        CheckConstraint(f"booking_type IN ({sql_in(RentOrSale)})", name="check_booking_type"),
        CheckConstraint(f"status IN ({sql_in(BookingStatus)})", name="check_booking_status"),
        CheckConstraint(f"payment_status IN ({sql_in(PaymentStatus)})", name="check_booking_payment_status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, listing={self.listing_id}, status={self.status})>"
