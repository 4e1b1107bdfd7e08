"""
Locust Load Test Suite

Start the API with the bundled directory seed first:
  DIRECTORY_SEED_FILE=locust/seed_directory.json uvicorn stallbook.main:app

Run scenarios:
  locust -f locustfile.py --tags contention   # Vendors fight over the same tables
  locust -f locustfile.py --tags scan         # Forged QR scans at volume
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import json
import random
import threading

from locust import HttpUser, task, between, tag, events

EVENT_ID = "load-fair"
ORGANIZER_ID = "load-organizer"
VENDOR_IDS = [f"load-vendor-{n}" for n in range(1, 41)]
POSITIONS = [f"P-{n}" for n in range(1, 13)]

# Shared state
_vendor_lock = threading.Lock()
_free_vendors = list(VENDOR_IDS)


def take_vendor():
    with _vendor_lock:
        return _free_vendors.pop() if _free_vendors else random.choice(VENDOR_IDS)


def table_payload(position_id):
    n = position_id.split("-")[1]
    return {
        "table_id": f"T-{n}",
        "position_id": position_id,
        "table_name": f"Table {n}",
        "table_type": "standard",
        "layout_name": "Hall A",
        "price": "100",
        "deposit_amount": "50",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Stall load test: event {EVENT_ID}, {len(POSITIONS)} tables, {len(VENDOR_IDS)} vendors")
    print("=" * 60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - 40 vendors -> 12 tables

    Run: locust -f locustfile.py --tags contention -u 40 -r 40 --run-time 30s

    After test, verify no position is held twice:
      GET /api/v1/stalls/available-tables/load-fair
    booked_tables must have no duplicate position_id.
    """

    wait_time = between(0, 0.1)

    def on_start(self):
        self.vendor_id = take_vendor()
        self.booking_id = None

        resp = self.client.post(
            "/api/v1/stalls/",
            json={"vendor_id": self.vendor_id, "event_id": EVENT_ID, "organizer_id": ORGANIZER_ID},
        )
        if resp.status_code == 201:
            self.booking_id = resp.json()["id"]
        elif resp.status_code == 409:
            existing = self.client.get(f"/api/v1/stalls/check-request/{EVENT_ID}/{self.vendor_id}")
            data = existing.json().get("data") if existing.status_code == 200 else None
            if data and data["status"] in ("Pending", "Confirmed"):
                self.booking_id = data["id"]

        if self.booking_id:
            self.client.patch(f"/api/v1/stalls/{self.booking_id}/status", json={"status": "Confirmed"})

    @tag("contention")
    @task
    def select_overlapping_tables(self):
        """Everyone asks for two adjacent tables near the same end of the hall."""
        if not self.booking_id:
            return

        start = random.randint(0, 3)
        wanted = POSITIONS[start : start + 2]
        with self.client.patch(
            f"/api/v1/stalls/{self.booking_id}/select-tables-and-addons",
            json={"selected_tables": [table_payload(p) for p in wanted]},
            name="/api/v1/stalls/{id}/select-tables-and-addons",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
                self.booking_id = None
            elif resp.status_code == 409:
                resp.success()  # Expected: lost the race, or already selected
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention", "read")
    @task(3)
    def poll_availability(self):
        self.client.get(f"/api/v1/stalls/available-tables/{EVENT_ID}", name="/api/v1/stalls/available-tables/{id}")


class ScanUser(HttpUser):
    """
    TEST 2: Scan storm - forged QR codes at the gate

    Run: locust -f locustfile.py --tags scan -u 20 -r 20 --run-time 20s

    Every scan must be rejected without touching any booking.
    """

    wait_time = between(0, 0.05)

    @tag("scan")
    @task
    def scan_forged(self):
        payload = json.dumps({"warning": "load", "type": "stall-checkin", "credential": "a.b.c"})
        with self.client.post("/api/v1/stalls/scan", json={"qr_code_data": payload}, catch_response=True) as resp:
            if resp.status_code in [400, 403, 404]:
                resp.success()
            else:
                resp.failure(f"Expected 400/403/404, got {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """

    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/stalls/",
            json={"vendor_id": random.choice(VENDOR_IDS), "event_id": "no-such-event", "organizer_id": ORGANIZER_ID},
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def empty_selection(self):
        with self.client.patch(
            "/api/v1/stalls/does-not-matter/select-tables-and-addons",
            json={"selected_tables": []},
            name="/api/v1/stalls/{id}/select-tables-and-addons [empty]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_scan(self):
        with self.client.post(
            "/api/v1/stalls/scan",
            json={"qr_code_data": "not json at all"},
            catch_response=True,
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/stalls/",
            data="not json at all",
            catch_response=True,
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")
