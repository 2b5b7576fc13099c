"""
Tests for booking endpoints: create, confirm, cancel, reschedule, queries.
"""

from decimal import Decimal

import pytest

from estate_booking.models.booking import Booking
from estate_booking.models.listing import Listing
from conftest import GUEST_ID, OWNER_ID, _add_listing, bearer, reload, rent_dates


def rent_payload(listing_id: str, start_in_days: int = 10, end_in_days: int = 45) -> dict:
    start, end = rent_dates(start_in_days, end_in_days)
    return {
        "listing_id": listing_id,
        "booking_type": "Rent",
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }


# --- create ---


@pytest.mark.asyncio
async def test_create_rent_booking(client, guest_headers, rent_listing, notifier):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload(rent_listing.id), headers=guest_headers
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["user_id"] == GUEST_ID
    assert data["duration_days"] == 35
    assert Decimal(data["total_price"]) == Decimal("35000")
    assert data["payment_status"] == "pending"
    assert data["expires_at"] is not None
    assert notifier.names_for(OWNER_ID) == ["booking_created"]

    # Listing stays bookable until the owner decides
    listing = await reload(Listing, rent_listing.id)
    assert listing.status == "active"


@pytest.mark.asyncio
async def test_create_sale_booking_has_flat_price(client, guest_headers, sale_listing):
    response = await client.post(
        "/api/v1/bookings/",
        json={"listing_id": sale_listing.id, "booking_type": "Sale"},
        headers=guest_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["total_price"]) == Decimal("25000000")
    assert data["start_date"] is None
    assert data["duration_days"] is None


@pytest.mark.asyncio
async def test_sale_booking_keeps_fractional_price(client, db_session, guest_headers):
    listing = await _add_listing(
        db_session, rent_or_sale="Sale", listing_type="House", price=Decimal("1000.50")
    )

    response = await client.post(
        "/api/v1/bookings/",
        json={"listing_id": listing.id, "booking_type": "Sale"},
        headers=guest_headers,
    )

    assert response.status_code == 201
    assert Decimal(response.json()["total_price"]) == Decimal("1000.50")
    stored = await reload(Booking, response.json()["id"])
    assert stored.total_price == Decimal("1000.50")


@pytest.mark.asyncio
async def test_create_booking_requires_token(client, rent_listing):
    response = await client.post("/api/v1/bookings/", json=rent_payload(rent_listing.id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_booking_rejects_bad_token(client, rent_listing):
    response = await client.post(
        "/api/v1/bookings/",
        json=rent_payload(rent_listing.id),
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cannot_book_own_listing(client, owner_headers, rent_listing):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload(rent_listing.id), headers=owner_headers
    )

    assert response.status_code == 403
    assert response.json()["code"] == "ownership_conflict"


@pytest.mark.asyncio
async def test_duplicate_active_booking_rejected(client, guest_headers, pending_rent_booking):
    response = await client.post(
        "/api/v1/bookings/",
        json=rent_payload(pending_rent_booking.listing_id, 20, 60),
        headers=guest_headers,
    )

    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_booking"


@pytest.mark.asyncio
async def test_other_guest_can_request_same_listing(client, other_guest_headers, pending_rent_booking):
    response = await client.post(
        "/api/v1/bookings/",
        json=rent_payload(pending_rent_booking.listing_id),
        headers=other_guest_headers,
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_short_rent_rejected(client, guest_headers, rent_listing):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload(rent_listing.id, 10, 30), headers=guest_headers
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "invalid_duration"
    assert "30 days" in body["message"]


@pytest.mark.asyncio
async def test_rent_starting_too_soon_rejected(client, guest_headers, rent_listing):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload(rent_listing.id, 2, 40), headers=guest_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_duration"


@pytest.mark.asyncio
async def test_rent_without_dates_fails_validation(client, guest_headers, rent_listing):
    response = await client.post(
        "/api/v1/bookings/",
        json={"listing_id": rent_listing.id, "booking_type": "Rent"},
        headers=guest_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_booking_type_must_match_listing(client, guest_headers, sale_listing):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload(sale_listing.id), headers=guest_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "booking_error"


@pytest.mark.asyncio
async def test_unknown_listing_is_404(client, guest_headers, db_session):
    response = await client.post(
        "/api/v1/bookings/", json=rent_payload("no-such-listing"), headers=guest_headers
    )
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


# --- confirm / cancel ---


@pytest.mark.asyncio
async def test_owner_confirms_rent_booking(client, owner_headers, pending_rent_booking, notifier):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["version"] == pending_rent_booking.version + 1

    listing = await reload(Listing, pending_rent_booking.listing_id)
    assert listing.status == "rented"
    assert notifier.names_for(GUEST_ID) == ["booking_confirmed"]


@pytest.mark.asyncio
async def test_confirm_sale_marks_listing_sold(client, owner_headers, pending_sale_booking):
    response = await client.post(
        f"/api/v1/bookings/{pending_sale_booking.id}/confirm", headers=owner_headers
    )

    assert response.status_code == 200
    listing = await reload(Listing, pending_sale_booking.listing_id)
    assert listing.status == "sold"


@pytest.mark.asyncio
async def test_guest_cannot_confirm(client, guest_headers, pending_rent_booking):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=guest_headers
    )

    assert response.status_code == 403
    assert response.json()["code"] == "transition_not_permitted"
    booking = await reload(Booking, pending_rent_booking.id)
    assert booking.status == "pending"


@pytest.mark.asyncio
async def test_confirm_twice_is_invalid(client, owner_headers, pending_rent_booking):
    url = f"/api/v1/bookings/{pending_rent_booking.id}/confirm"
    assert (await client.post(url, headers=owner_headers)).status_code == 200

    response = await client.post(url, headers=owner_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_second_booking_cannot_be_confirmed_once_rented(
    client, owner_headers, other_guest_headers, pending_rent_booking
):
    other = await client.post(
        "/api/v1/bookings/",
        json=rent_payload(pending_rent_booking.listing_id),
        headers=other_guest_headers,
    )
    assert other.status_code == 201

    first = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers
    )
    assert first.status_code == 200

    second = await client.post(
        f"/api/v1/bookings/{other.json()['id']}/confirm", headers=owner_headers
    )
    assert second.status_code == 409
    assert second.json()["code"] == "listing_unavailable"

    # Rolled back as a unit: the losing booking is still pending
    booking = await reload(Booking, other.json()["id"])
    assert booking.status == "pending"


@pytest.mark.asyncio
async def test_guest_cancels_pending(client, guest_headers, pending_rent_booking, notifier):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=guest_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert notifier.names_for(OWNER_ID) == ["booking_cancelled"]

    listing = await reload(Listing, pending_rent_booking.listing_id)
    assert listing.status == "active"


@pytest.mark.asyncio
async def test_owner_rejects_pending(client, owner_headers, pending_rent_booking, notifier):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=owner_headers
    )

    assert response.status_code == 200
    assert notifier.names_for(GUEST_ID) == ["booking_cancelled"]


@pytest.mark.asyncio
async def test_cancel_confirmed_reactivates_listing(client, owner_headers, pending_rent_booking):
    await client.post(f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers)

    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=owner_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    listing = await reload(Listing, pending_rent_booking.listing_id)
    assert listing.status == "active"


@pytest.mark.asyncio
async def test_guest_cannot_cancel_confirmed(client, owner_headers, guest_headers, pending_rent_booking):
    await client.post(f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers)

    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=guest_headers
    )

    assert response.status_code == 403
    booking = await reload(Booking, pending_rent_booking.id)
    assert booking.status == "confirmed"


@pytest.mark.asyncio
async def test_third_party_cannot_cancel(client, other_guest_headers, pending_rent_booking):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=other_guest_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid(client, guest_headers, pending_rent_booking):
    url = f"/api/v1/bookings/{pending_rent_booking.id}/cancel"
    assert (await client.post(url, headers=guest_headers)).status_code == 200

    response = await client.post(url, headers=guest_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_cancelled_booking_frees_the_guest_to_rebook(client, guest_headers, pending_rent_booking):
    await client.post(f"/api/v1/bookings/{pending_rent_booking.id}/cancel", headers=guest_headers)

    response = await client.post(
        "/api/v1/bookings/",
        json=rent_payload(pending_rent_booking.listing_id),
        headers=guest_headers,
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_confirm_unknown_booking_is_404(client, owner_headers, db_session):
    response = await client.post("/api/v1/bookings/missing/confirm", headers=owner_headers)
    assert response.status_code == 404


# --- queries ---


@pytest.mark.asyncio
async def test_list_my_bookings(client, guest_headers, other_guest_headers, pending_rent_booking):
    response = await client.get("/api/v1/bookings/", headers=guest_headers)

    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [pending_rent_booking.id]

    response = await client.get("/api/v1/bookings/", headers=other_guest_headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_get_booking_visible_to_parties_only(
    client, guest_headers, owner_headers, other_guest_headers, pending_rent_booking
):
    url = f"/api/v1/bookings/{pending_rent_booking.id}"

    assert (await client.get(url, headers=guest_headers)).status_code == 200
    assert (await client.get(url, headers=owner_headers)).status_code == 200
    assert (await client.get(url, headers=other_guest_headers)).status_code == 403


@pytest.mark.asyncio
async def test_check_booking(client, guest_headers, other_guest_headers, pending_rent_booking):
    url = f"/api/v1/bookings/check?listing_id={pending_rent_booking.listing_id}"

    assert (await client.get(url, headers=guest_headers)).json() == {"exists": True}
    assert (await client.get(url, headers=other_guest_headers)).json() == {"exists": False}


@pytest.mark.asyncio
async def test_owner_sees_requests(client, owner_headers, guest_headers, pending_rent_booking):
    response = await client.get("/api/v1/bookings/requests", headers=owner_headers)

    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [pending_rent_booking.id]

    # Guests own no listings, so they have no incoming requests
    response = await client.get("/api/v1/bookings/requests", headers=guest_headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_bookings_for_my_listings_status_filter(client, owner_headers, pending_rent_booking):
    await client.post(f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers)

    confirmed = await client.get(
        "/api/v1/bookings/for-my-listings?status=confirmed", headers=owner_headers
    )
    pending = await client.get(
        "/api/v1/bookings/for-my-listings?status=pending", headers=owner_headers
    )

    assert [b["id"] for b in confirmed.json()] == [pending_rent_booking.id]
    assert pending.json() == []


# --- reschedule ---


@pytest.mark.asyncio
async def test_guest_reschedules_pending_rent(client, guest_headers, pending_rent_booking):
    start, end = rent_dates(14, 74)
    response = await client.patch(
        f"/api/v1/bookings/{pending_rent_booking.id}",
        json={"start_date": start.isoformat(), "end_date": end.isoformat()},
        headers=guest_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["duration_days"] == 60
    assert Decimal(data["total_price"]) == Decimal("60000")
    assert data["status"] == "pending"


@pytest.mark.asyncio
async def test_reschedule_validates_window(client, guest_headers, pending_rent_booking):
    start, end = rent_dates(14, 20)
    response = await client.patch(
        f"/api/v1/bookings/{pending_rent_booking.id}",
        json={"start_date": start.isoformat(), "end_date": end.isoformat()},
        headers=guest_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_duration"


@pytest.mark.asyncio
async def test_only_guest_reschedules(client, owner_headers, pending_rent_booking):
    start, end = rent_dates(14, 74)
    response = await client.patch(
        f"/api/v1/bookings/{pending_rent_booking.id}",
        json={"start_date": start.isoformat(), "end_date": end.isoformat()},
        headers=owner_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_confirmed_booking_cannot_be_rescheduled(
    client, owner_headers, guest_headers, pending_rent_booking
):
    await client.post(f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers)

    start, end = rent_dates(14, 74)
    response = await client.patch(
        f"/api/v1/bookings/{pending_rent_booking.id}",
        json={"start_date": start.isoformat(), "end_date": end.isoformat()},
        headers=guest_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_token_grants_no_booking_rights(client, pending_rent_booking):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/confirm",
        headers=bearer("admin-1", role="admin"),
    )
    assert response.status_code == 403
