"""
Locust Load Test Suite

Tokens are minted locally with the API's SECRET_KEY, so run this with the
same environment as the server.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Racing requests and decisions
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from estate_booking.core.security import create_access_token

OWNER_ID = "load-owner"
LISTING_IDS = []
CONCURRENCY_LISTING_ID = None


def headers_for(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


def rent_window(start_in_days: int = 10, nights: int = 35) -> tuple[str, str]:
    start = datetime.now(timezone.utc) + timedelta(days=start_in_days)
    return start.isoformat(), (start + timedelta(days=nights)).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: Concurrency listing is created by the first owner user")
    print("=" * 60)


class ConcurrencyOwner(HttpUser):
    """
    TEST 1a: Owner confirms incoming requests as fast as possible.

    Run together with ConcurrencyGuest:
      locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify at most one booking won the listing:
      SELECT COUNT(*) FROM bookings WHERE listing_id = X AND status = 'confirmed';
    Should be <= 1
    """
    wait_time = between(0, 0.1)
    fixed_count = 2

    def on_start(self):
        self.headers = headers_for(OWNER_ID)
        if not CONCURRENCY_LISTING_ID:
            resp = self.client.post(
                "/api/v1/listings/",
                json={
                    "title": "Concurrency Test Flat",
                    "location": "Test",
                    "listing_type": "Apartment",
                    "rent_or_sale": "Rent",
                    "price": "30000",
                },
                headers=self.headers,
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_LISTING_ID"] = resp.json()["id"]
                print(f"\n✓ Created listing {CONCURRENCY_LISTING_ID}\n")

    @tag("concurrency")
    @task
    def confirm_any_request(self):
        """Both owner users race to confirm the same pending requests."""
        resp = self.client.get("/api/v1/bookings/requests", headers=self.headers)
        if resp.status_code != 200 or not resp.json():
            return

        booking_id = random.choice(resp.json())["id"]
        with self.client.post(
            f"/api/v1/bookings/{booking_id}/confirm",
            headers=self.headers,
            name="/api/v1/bookings/{id}/confirm",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            elif resp.status_code in (400, 409):
                resp.success()  # Expected: lost the race or listing already rented
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ConcurrencyGuest(HttpUser):
    """TEST 1b: Many guests request the same listing."""
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = headers_for(f"load-guest-{uuid.uuid4().hex[:8]}")

    @tag("concurrency")
    @task
    def request_listing(self):
        if not CONCURRENCY_LISTING_ID:
            return
        start, end = rent_window()
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "listing_id": CONCURRENCY_LISTING_ID,
                "booking_type": "Rent",
                "start_date": start,
                "end_date": end,
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code in (409, 429):
                resp.success()  # Expected: duplicate request, listing taken or rate limited
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def browse_listings_cached(self):
        page = random.randint(1, 5)
        resp = self.client.get(
            f"/api/v1/listings/?page={page}&page_size=9",
            name="/api/v1/listings/ [cached]",
        )
        if resp.status_code == 200:
            for listing in resp.json().get("listings", []):
                if listing["id"] not in LISTING_IDS:
                    LISTING_IDS.append(listing["id"])

    @tag("throughput", "read")
    @task(3)
    def get_listing_detail(self):
        if LISTING_IDS:
            self.client.get(
                f"/api/v1/listings/{random.choice(LISTING_IDS)}",
                name="/api/v1/listings/{id}",
            )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(f"load-edge-{uuid.uuid4().hex[:8]}")

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_listing(self):
        start, end = rent_window()
        with self.client.post(
            "/api/v1/bookings/",
            json={"listing_id": "missing", "booking_type": "Rent", "start_date": start, "end_date": end},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404, 429))

    @tag("edge")
    @task
    def stay_too_short(self):
        if not LISTING_IDS:
            return
        start, end = rent_window(nights=5)
        with self.client.post(
            "/api/v1/bookings/",
            json={"listing_id": random.choice(LISTING_IDS), "booking_type": "Rent", "start_date": start, "end_date": end},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 409, 429))

    @tag("edge")
    @task
    def missing_dates(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"listing_id": "any", "booking_type": "Rent"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (422, 429))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422, 429))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={"listing_id": "any", "booking_type": "Sale"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (401,))
