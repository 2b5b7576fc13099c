"""
Tests for the payment gateway callback.
"""

import pytest
import pytest_asyncio

from conftest import CALLBACK_SECRET, GUEST_ID

SECRET_HEADERS = {"X-Internal-Secret": CALLBACK_SECRET}


@pytest_asyncio.fixture
async def confirmed_booking(client, owner_headers, pending_rent_booking):
    response = await client.post(
        f"/api/v1/bookings/{pending_rent_booking.id}/confirm", headers=owner_headers
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_callback_requires_secret(client, confirmed_booking):
    payload = {"booking_id": confirmed_booking["id"], "outcome": "paid"}

    missing = await client.post("/api/v1/payments/callback", json=payload)
    wrong = await client.post(
        "/api/v1/payments/callback", json=payload, headers={"X-Internal-Secret": "nope"}
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_paid_callback_marks_booking_paid(client, confirmed_booking, notifier):
    response = await client.post(
        "/api/v1/payments/callback",
        json={
            "booking_id": confirmed_booking["id"],
            "outcome": "paid",
            "reference": "khalti-txn-42",
            "method": "khalti",
        },
        headers=SECRET_HEADERS,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["payment_status"] == "paid"
    assert data["paid_at"] is not None
    assert data["status"] == "confirmed"
    assert "payment_paid" in notifier.names_for(GUEST_ID)


@pytest.mark.asyncio
async def test_paid_twice_is_rejected(client, confirmed_booking):
    payload = {"booking_id": confirmed_booking["id"], "outcome": "paid"}
    first = await client.post("/api/v1/payments/callback", json=payload, headers=SECRET_HEADERS)
    assert first.status_code == 200

    second = await client.post("/api/v1/payments/callback", json=payload, headers=SECRET_HEADERS)
    assert second.status_code == 400
    assert second.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_failed_payment_can_be_retried(client, confirmed_booking):
    failed = await client.post(
        "/api/v1/payments/callback",
        json={"booking_id": confirmed_booking["id"], "outcome": "failed"},
        headers=SECRET_HEADERS,
    )
    assert failed.status_code == 200
    assert failed.json()["payment_status"] == "failed"
    assert failed.json()["paid_at"] is None

    paid = await client.post(
        "/api/v1/payments/callback",
        json={"booking_id": confirmed_booking["id"], "outcome": "paid"},
        headers=SECRET_HEADERS,
    )
    assert paid.json()["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_pending_booking_cannot_be_paid(client, pending_rent_booking):
    response = await client.post(
        "/api/v1/payments/callback",
        json={"booking_id": pending_rent_booking.id, "outcome": "paid"},
        headers=SECRET_HEADERS,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_outcome_fails_validation(client, confirmed_booking):
    response = await client.post(
        "/api/v1/payments/callback",
        json={"booking_id": confirmed_booking["id"], "outcome": "refunded"},
        headers=SECRET_HEADERS,
    )
    assert response.status_code == 422
