"""
Booking lifecycle engine: pure rules, no I/O.

STATE MACHINE
=============

    pending ──confirm──▶ confirmed ──cancel──▶ cancelled
       │ ╲                   │
       │  ╲──cancel──▶ cancelled
       │                     │
       ├──expire──▶ expired  │
       └──invalidate──▶ property_deleted ◀──invalidate──┘

Every status change in the service layer goes through `plan_transition`,
which returns the target status plus the listing side effect. Anything not in
TRANSITIONS is rejected here, in one place.

Who may act:
  confirm             listing owner
  cancel (pending)    guest or listing owner
  cancel (confirmed)  listing owner
  expire, invalidate  system only (no acting user)

PRICING
=======

Rent:  total = round_half_up(max(days, 30) * price / 30), whole units
Sale:  total = price, exact to the cent

Multiplying before dividing keeps the Decimal arithmetic exact, so
35 days at 30000/month is exactly 35000.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from estate_booking.core.config import Settings, get_settings
from estate_booking.core.exceptions import InvalidDuration, InvalidTransition, TransitionNotPermitted
from estate_booking.models.enums import BookingAction, BookingStatus, ListingStatus, RentOrSale

SECONDS_PER_DAY = 24 * 60 * 60
CENT = Decimal("0.01")

TRANSITIONS: dict[tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.PENDING, BookingAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PENDING, BookingAction.EXPIRE): BookingStatus.EXPIRED,
    (BookingStatus.PENDING, BookingAction.INVALIDATE): BookingStatus.PROPERTY_DELETED,
    (BookingStatus.CONFIRMED, BookingAction.INVALIDATE): BookingStatus.PROPERTY_DELETED,
}

SYSTEM_ACTIONS = {BookingAction.EXPIRE, BookingAction.INVALIDATE}

# Listing states a new booking can still be made or confirmed against
BOOKABLE_LISTING_STATES = {ListingStatus.ACTIVE.value, ListingStatus.PENDING.value}


@dataclass(frozen=True)
class BookingRules:
    min_duration_days: int
    min_lead_days: int
    price_period_days: int
    pending_window: timedelta

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BookingRules":
        settings = settings or get_settings()
        return cls(
            min_duration_days=settings.RENT_MIN_DURATION_DAYS,
            min_lead_days=settings.RENT_MIN_LEAD_DAYS,
            price_period_days=settings.RENT_PRICE_PERIOD_DAYS,
            pending_window=timedelta(hours=settings.BOOKING_PENDING_WINDOW_HOURS),
        )


@dataclass(frozen=True)
class TransitionPlan:
    action: BookingAction
    from_status: BookingStatus
    to_status: BookingStatus
    listing_status: Optional[ListingStatus] = None  # None: listing untouched

    @property
    def reverts_listing(self) -> bool:
        return self.listing_status == ListingStatus.ACTIVE


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; naive values (SQLite round-trips) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_duration_days(start_date: datetime, end_date: datetime) -> int:
    seconds = (as_utc(end_date) - as_utc(start_date)).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def compute_total_price(
    booking_type: RentOrSale,
    listing_price,
    duration_days: Optional[int],
    rules: BookingRules,
) -> Decimal:
    price = Decimal(str(listing_price))
    if RentOrSale(booking_type) == RentOrSale.SALE:
        return price.quantize(CENT)

    billable_days = max(duration_days or 0, rules.price_period_days)
    total = Decimal(billable_days) * price / Decimal(rules.price_period_days)
    return total.quantize(Decimal(1), rounding=ROUND_HALF_UP).quantize(CENT)


def validate_rent_window(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    now: datetime,
    rules: BookingRules,
) -> int:
    """Check a rent date range and return its duration in days."""
    if start_date is None or end_date is None:
        raise InvalidDuration("Start date and end date are required for Rent")

    start, end = as_utc(start_date), as_utc(end_date)
    if end <= start:
        raise InvalidDuration("End date must be after start date")

    earliest_start = as_utc(now) + timedelta(days=rules.min_lead_days)
    if start < earliest_start:
        raise InvalidDuration(
            f"Start date must be at least {rules.min_lead_days} days from now"
        )

    duration_days = compute_duration_days(start, end)
    if duration_days < rules.min_duration_days:
        raise InvalidDuration(
            f"Minimum booking duration is {rules.min_duration_days} days, got {duration_days}"
        )
    return duration_days


def is_overdue(status: str, expires_at: Optional[datetime], now: datetime) -> bool:
    return (
        status == BookingStatus.PENDING.value
        and expires_at is not None
        and as_utc(expires_at) < as_utc(now)
    )


def reconcile_expiry(booking, now: datetime) -> BookingStatus:
    """Status as it should be presented at `now`: overdue pending reads as expired."""
    if is_overdue(booking.status, booking.expires_at, now):
        return BookingStatus.EXPIRED
    return BookingStatus(booking.status)


def is_active(booking, now: datetime) -> bool:
    return reconcile_expiry(booking, now) in (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def sources_for(action: BookingAction) -> list[str]:
    """Statuses `action` may start from; used by bulk system transitions."""
    return [status.value for (status, act) in TRANSITIONS if act == BookingAction(action)]


def target_of(action: BookingAction) -> BookingStatus:
    targets = {target for (_, act), target in TRANSITIONS.items() if act == BookingAction(action)}
    if len(targets) != 1:
        raise ValueError(f"{action} has no single target status")
    return targets.pop()


def plan_transition(
    booking,
    action: BookingAction,
    owner_id: str,
    actor_id: Optional[str],
) -> TransitionPlan:
    """
    Validate `action` on `booking` and describe its effect.

    Raises InvalidTransition when the move is not in the table and
    TransitionNotPermitted when the actor lacks authority for it.
    """
    action = BookingAction(action)
    current = BookingStatus(booking.status)
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransition(f"Cannot {action.value} a booking that is {current.value}")

    if action in SYSTEM_ACTIONS:
        if actor_id is not None:
            raise TransitionNotPermitted(f"{action.value} is performed by the system only")
    else:
        is_owner = actor_id == owner_id
        is_guest = actor_id == booking.user_id
        if action == BookingAction.CONFIRM and not is_owner:
            raise TransitionNotPermitted("You can only confirm bookings for your own listings")
        if action == BookingAction.CANCEL:
            if current == BookingStatus.CONFIRMED and not is_owner:
                raise TransitionNotPermitted("Only the listing owner can cancel a confirmed booking")
            if not (is_owner or is_guest):
                raise TransitionNotPermitted(
                    "You can only cancel your own bookings or bookings for your listings"
                )

    listing_status = None
    if action == BookingAction.CONFIRM:
        listing_status = (
            ListingStatus.RENTED
            if RentOrSale(booking.booking_type) == RentOrSale.RENT
            else ListingStatus.SOLD
        )
    elif action == BookingAction.CANCEL and current == BookingStatus.CONFIRMED:
        listing_status = ListingStatus.ACTIVE

    return TransitionPlan(
        action=action,
        from_status=current,
        to_status=target,
        listing_status=listing_status,
    )
