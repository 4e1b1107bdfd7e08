"""
Tests for the stall booking HTTP endpoints.
"""

import asyncio
import json

import pytest
from httpx import AsyncClient

from conftest import EMPTY_EVENT_ID, EVENT_ID, ORGANIZER_ID, VENDOR_IDS

STALLS = "/api/v1/stalls"


def _table(n: int) -> dict:
    return {
        "table_id": f"T-{n}",
        "position_id": f"P-{n}",
        "table_name": f"Table {n}",
        "table_type": "premium" if n <= 2 else "standard",
        "layout_name": "Main Hall",
        "price": "100",
        "deposit_amount": "50",
    }


async def _request(client: AsyncClient, vendor_id: str = VENDOR_IDS[0]) -> dict:
    response = await client.post(
        f"{STALLS}/",
        json={"vendor_id": vendor_id, "event_id": EVENT_ID, "organizer_id": ORGANIZER_ID},
    )
    assert response.status_code == 201
    return response.json()


async def _confirmed(client: AsyncClient, vendor_id: str = VENDOR_IDS[0]) -> dict:
    stall = await _request(client, vendor_id)
    response = await client.patch(f"{STALLS}/{stall['id']}/status", json={"status": "Confirmed"})
    assert response.status_code == 200
    return response.json()


async def _paid(client: AsyncClient, vendor_id: str = VENDOR_IDS[0], n: int = 1) -> dict:
    stall = await _confirmed(client, vendor_id)
    response = await client.patch(
        f"{STALLS}/{stall['id']}/select-tables-and-addons",
        json={
            "selected_tables": [_table(n)],
            "selected_add_ons": [{"add_on_id": "chair", "name": "Extra chair", "price": "10", "quantity": 2}],
        },
    )
    assert response.status_code == 200
    response = await client.patch(f"{STALLS}/{stall['id']}/payment-status", json={"payment_status": "Paid"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_stall_request(client: AsyncClient):
    data = await _request(client)
    assert data["status"] == "Pending"
    assert data["payment_status"] == "Unpaid"
    assert data["selected_tables"] == []
    assert data["has_scan_credential"] is False


@pytest.mark.asyncio
async def test_duplicate_request_returns_409(client: AsyncClient):
    await _request(client)
    response = await client.post(
        f"{STALLS}/",
        json={"vendor_id": VENDOR_IDS[0], "event_id": EVENT_ID, "organizer_id": ORGANIZER_ID},
    )
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_active_booking"


@pytest.mark.asyncio
async def test_unknown_event_returns_404(client: AsyncClient):
    response = await client.post(
        f"{STALLS}/",
        json={"vendor_id": VENDOR_IDS[0], "event_id": "evt-missing", "organizer_id": ORGANIZER_ID},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_check_existing_request(client: AsyncClient):
    response = await client.get(f"{STALLS}/check-request/{EVENT_ID}/{VENDOR_IDS[0]}")
    assert response.status_code == 200
    assert response.json()["data"] is None

    stall = await _request(client)
    response = await client.get(f"{STALLS}/check-request/{EVENT_ID}/{VENDOR_IDS[0]}")
    assert response.json()["status"] == "Pending"
    assert response.json()["data"]["id"] == stall["id"]


@pytest.mark.asyncio
async def test_select_tables_and_pay(client: AsyncClient):
    data = await _paid(client)
    assert data["status"] == "Completed"
    assert data["payment_status"] == "Paid"
    assert float(data["grand_total"]) == 170
    assert float(data["remaining_amount"]) == 0
    assert data["has_scan_credential"] is True

    response = await client.get(f"{STALLS}/available-tables/{EVENT_ID}")
    availability = response.json()
    assert [t["position_id"] for t in availability["booked_tables"]] == ["P-1"]
    assert len(availability["available_tables"]) == 11
    assert {a["add_on_id"] for a in availability["add_on_items"]} == {"chair", "power"}


@pytest.mark.asyncio
async def test_selection_conflict_returns_positions(client: AsyncClient):
    await _paid(client, VENDOR_IDS[0], n=12)
    other = await _confirmed(client, VENDOR_IDS[1])

    response = await client.patch(
        f"{STALLS}/{other['id']}/select-tables-and-addons",
        json={"selected_tables": [_table(11), _table(12)]},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "conflict"
    assert body["positions"] == ["P-12"]


@pytest.mark.asyncio
async def test_concurrent_selection_over_http(client: AsyncClient):
    a = await _confirmed(client, VENDOR_IDS[0])
    b = await _confirmed(client, VENDOR_IDS[1])

    responses = await asyncio.gather(
        *(
            client.patch(f"{STALLS}/{s['id']}/select-tables-and-addons", json={"selected_tables": [_table(12)]})
            for s in (a, b)
        )
    )
    assert sorted(r.status_code for r in responses) == [200, 409]


@pytest.mark.asyncio
async def test_selection_validation_errors(client: AsyncClient):
    stall = await _confirmed(client)

    response = await client.patch(f"{STALLS}/{stall['id']}/select-tables-and-addons", json={"selected_tables": []})
    assert response.status_code == 422

    response = await client.patch(
        f"{STALLS}/{stall['id']}/select-tables-and-addons",
        json={"selected_tables": [{**_table(1), "position_id": "P-404"}]},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"

    response = await client.patch(
        f"{STALLS}/{stall['id']}/select-tables-and-addons",
        json={"selected_tables": [{**_table(1), "price": "0.01", "deposit_amount": "0"}]},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"

    response = await client.get(f"{STALLS}/{stall['id']}")
    assert response.json()["status"] == "Confirmed"


@pytest.mark.asyncio
async def test_select_before_confirm_returns_409(client: AsyncClient):
    stall = await _request(client)
    response = await client.patch(
        f"{STALLS}/{stall['id']}/select-tables-and-addons", json={"selected_tables": [_table(1)]}
    )
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_cancel_twice(client: AsyncClient):
    stall = await _request(client)
    body = {"status": "Cancelled", "cancellation_reason": "no space"}

    response = await client.patch(f"{STALLS}/{stall['id']}/status", json=body)
    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "no space"

    response = await client.patch(f"{STALLS}/{stall['id']}/status", json=body)
    assert response.status_code == 409
    assert response.json()["error"] == "already_cancelled"


@pytest.mark.asyncio
async def test_partial_payment_requires_amount(client: AsyncClient):
    stall = await _confirmed(client)
    await client.patch(f"{STALLS}/{stall['id']}/select-tables-and-addons", json={"selected_tables": [_table(3)]})

    response = await client.patch(f"{STALLS}/{stall['id']}/payment-status", json={"payment_status": "Partial"})
    assert response.status_code == 422

    response = await client.patch(
        f"{STALLS}/{stall['id']}/payment-status", json={"payment_status": "Partial", "paid_amount": "40"}
    )
    assert response.status_code == 200
    assert float(response.json()["remaining_amount"]) == 110


@pytest.mark.asyncio
async def test_scan_flow_and_deposit(client: AsyncClient, notifier):
    stall = await _paid(client)
    issued = [e for e in notifier.events if e.booking_id == stall["id"] and e.event_type == "credential_issued"]
    qr = issued[0].payload["qr_payload"]

    response = await client.patch(f"{STALLS}/{stall['id']}/return-deposit")
    assert response.status_code == 409

    response = await client.post(f"{STALLS}/scan", json={"qr_code_data": qr})
    assert response.status_code == 200
    assert response.json()["action"] == "CHECK_IN"
    assert response.json()["message"] == "Check-in successful"

    response = await client.post(f"{STALLS}/scan", json={"qr_code_data": qr})
    assert response.json()["action"] == "CHECK_OUT"
    assert response.json()["duration_minutes"] is not None

    response = await client.post(f"{STALLS}/scan", json={"qr_code_data": qr})
    assert response.status_code == 409
    assert response.json()["error"] == "already_checked_out"

    response = await client.get(f"{STALLS}/{stall['id']}/attendance")
    assert response.json()["has_checked_out"] is True

    for _ in range(2):
        response = await client.patch(f"{STALLS}/{stall['id']}/return-deposit")
        assert response.status_code == 200
        assert response.json()["deposit_returned"] is True


@pytest.mark.asyncio
async def test_scan_errors(client: AsyncClient):
    response = await client.post(f"{STALLS}/scan", json={"qr_code_data": "hello"})
    assert response.status_code == 400
    assert response.json()["error"] == "malformed_payload"

    stall = await _paid(client)
    forged = json.dumps({"warning": "w", "type": "stall-checkin", "credential": "a.b.c"})
    response = await client.post(f"{STALLS}/scan", json={"qr_code_data": forged})
    assert response.status_code == 400

    response = await client.get(f"{STALLS}/{stall['id']}/attendance")
    assert response.json()["has_checked_in"] is False


@pytest.mark.asyncio
async def test_listings(client: AsyncClient):
    await _request(client, VENDOR_IDS[0])
    await _request(client, VENDOR_IDS[1])

    response = await client.get(f"{STALLS}/event/{EVENT_ID}")
    assert len(response.json()) == 2

    response = await client.get(f"{STALLS}/vendor/{VENDOR_IDS[1]}")
    assert [s["vendor_id"] for s in response.json()] == [VENDOR_IDS[1]]

    response = await client.get(f"{STALLS}/organizer/{ORGANIZER_ID}")
    assert len(response.json()) == 2


@pytest.mark.asyncio
async def test_event_without_layout(client: AsyncClient):
    response = await client.get(f"{STALLS}/available-tables/{EMPTY_EVENT_ID}")
    assert response.status_code == 200
    assert response.json()["all_tables"] == []


@pytest.mark.asyncio
async def test_unknown_stall_returns_404(client: AsyncClient):
    response = await client.get(f"{STALLS}/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
