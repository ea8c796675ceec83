"""
Locust Load Test Suite

The API is admin-only, so every simulated client signs in with the bootstrap
admin account (LOCUST_ADMIN_EMAIL / LOCUST_ADMIN_PASSWORD, matching
BOOTSTRAP_ADMIN_EMAIL / BOOTSTRAP_ADMIN_PASSWORD on the server) and books on
behalf of users it creates.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test over-admission
  locust -f locustfile.py --tags throughput   # Test dashboard cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import string
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

ADMIN_EMAIL = os.environ.get("LOCUST_ADMIN_EMAIL", "admin@meshwar.test")
ADMIN_PASSWORD = os.environ.get("LOCUST_ADMIN_PASSWORD", "admin-password")

CONCURRENCY_LIMIT = 10

# Shared state
ACTIVITY_IDS = []
CONCURRENCY_ACTIVITY_ID = None


def random_email():
    return f"load_{random.randint(10000, 99999)}_{random.randint(0, 999)}@test.com"


def random_name():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def activity_payload(title, participant_limit):
    start = datetime.now(timezone.utc) + timedelta(days=random.randint(1, 90))
    return {
        "title": title,
        "description": "Load test activity",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "start_time": "09:00",
        "end_time": "12:00",
        "difficulty": random.choice(["easy", "moderate", "hard"]),
        "age_group": random.choice(["all", "adults", "children", "seniors"]),
        "participant_limit": participant_limit,
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: signing in as {ADMIN_EMAIL}")
    print("=" * 60)


class AdminClient(HttpUser):
    abstract = True

    def on_start(self):
        resp = self.client.post("/api/v1/auth/login", json={
            "email": ADMIN_EMAIL,
            "password": ADMIN_PASSWORD,
        })
        if resp.status_code == 200:
            self.headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        else:
            self.headers = {}

    def create_user(self):
        resp = self.client.post("/api/v1/users/", json={
            "email": random_email(),
            "password": "load-test-pass",
            "display_name": random_name(),
        }, headers=self.headers, name="/api/v1/users/")
        if resp.status_code == 201:
            return resp.json()["id"]
        return None


class ConcurrencyUser(AdminClient):
    """
    TEST 1: Concurrency - 100 users -> 10 places

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings WHERE activity_id = X;
      SELECT current_participants FROM activities WHERE id = X;
    Both should be <= 10 and equal to each other
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        super().on_start()
        self.user_id = self.create_user() if self.headers else None

        if self.headers and not CONCURRENCY_ACTIVITY_ID:
            resp = self.client.post(
                "/api/v1/activities/",
                json=activity_payload("Concurrency Test Activity", CONCURRENCY_LIMIT),
                headers=self.headers,
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_ACTIVITY_ID"] = resp.json()["id"]
                print(f"\nCreated activity {CONCURRENCY_ACTIVITY_ID} with {CONCURRENCY_LIMIT} places\n")

    @tag("concurrency")
    @task
    def book_limited_places(self):
        """All users fight for the same 10 places."""
        if not CONCURRENCY_ACTIVITY_ID or not self.user_id:
            return

        with self.client.post("/api/v1/bookings/",
            json={"user_id": self.user_id, "activity_id": CONCURRENCY_ACTIVITY_ID, "status": "confirmed"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: full or already booked
            elif resp.status_code == 503:
                resp.success()  # Retry budget exhausted, safe to retry
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(AdminClient):
    """
    TEST 2: Throughput - Dashboard cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def dashboard_cached(self):
        period = random.choice(["day", "week", "month", "year", "all"])
        self.client.get(f"/api/v1/dashboard/?period={period}",
            headers=self.headers,
            name="/api/v1/dashboard/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def list_activities(self):
        self.client.get("/api/v1/activities/", headers=self.headers)

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(AdminClient):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_activity(self):
        with self.client.post("/api/v1/bookings/",
            json={"user_id": "missing-user", "activity_id": "missing-activity"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_status(self):
        with self.client.post("/api/v1/bookings/",
            json={"user_id": "u", "activity_id": "a", "status": "maybe"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/bookings/",
            json={"user_id": "u", "activity_id": "a"},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(AdminClient):
    """
    TEST 4: Realistic mixed admin workload

    Run: locust -f locustfile.py -u 50 -r 10 --run-time 120s

      - Mostly browsing and dashboard (75%)
      - Some bookings and deletions (20%)
      - Rare creates (5%)
    """
    wait_time = between(1, 3)

    def on_start(self):
        super().on_start()
        self.user_id = self.create_user() if self.headers else None
        self.booking_ids = []

    @task(40)
    def browse_activities(self):
        resp = self.client.get("/api/v1/activities/", headers=self.headers)
        if resp.status_code == 200:
            for activity in resp.json():
                if activity["id"] not in ACTIVITY_IDS:
                    ACTIVITY_IDS.append(activity["id"])

    @task(20)
    def view_dashboard(self):
        self.client.get("/api/v1/dashboard/?period=month", headers=self.headers)

    @task(15)
    def book_activity(self):
        if ACTIVITY_IDS and self.user_id:
            resp = self.client.post("/api/v1/bookings/",
                json={"user_id": self.user_id, "activity_id": random.choice(ACTIVITY_IDS)},
                headers=self.headers)
            if resp.status_code == 201:
                self.booking_ids.append(resp.json()["id"])

    @task(5)
    def delete_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop(random.randrange(len(self.booking_ids)))
            self.client.delete(f"/api/v1/bookings/{booking_id}",
                headers=self.headers,
                name="/api/v1/bookings/{id}")

    @task(3)
    def create_activity(self):
        if self.headers:
            resp = self.client.post("/api/v1/activities/",
                json=activity_payload(f"Activity {random.randint(1, 10000)}", random.randint(0, 50)),
                headers=self.headers)
            if resp.status_code == 201:
                ACTIVITY_IDS.append(resp.json()["id"])
