import asyncio

import pytest


pytestmark = pytest.mark.asyncio

PREFIX = "/api/v1"


def reservation_payload(**overrides):
    payload = {
        "restaurant_id": "R1",
        "sector_id": "S1",
        "party_size": 6,
        "start_date_time": "2025-09-08T20:00:00-03:00",
        "customer": {"name": "Test Guest", "phone": "+15550000", "email": "guest@example.com"},
        "notes": "pytest",
    }
    payload.update(overrides)
    return payload


async def post_reservation(client, key, payload):
    return await client.post(f"{PREFIX}/reservations", json=payload, headers={"Idempotency-Key": key})


async def test_create_reservation_then_slot_is_taken(client):
    response = await post_reservation(client, "happy-1", reservation_payload())
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["table_ids"] == ["T4"]
    assert body["status"] == "CONFIRMED"
    assert body["notes"] == "pytest"
    assert "idempotency_key" not in body

    availability = await client.get(
        f"{PREFIX}/availability",
        params={"restaurant_id": "R1", "sector_id": "S1", "date": "2025-09-08", "party_size": 6},
    )
    assert availability.status_code == 200
    data = availability.json()
    assert data["slot_minutes"] == 15
    assert data["duration_minutes"] == 90
    assert len(data["slots"]) == 96

    slot = next(s for s in data["slots"] if s["start"].startswith("2025-09-08T20:00:00"))
    assert slot == {"start": slot["start"], "available": False, "reason": "no_capacity"}


async def test_retry_with_same_key_returns_same_reservation(client):
    first = await post_reservation(client, "retry-key", reservation_payload())
    second = await post_reservation(client, "retry-key", reservation_payload(party_size=2))

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["created_at"] == first.json()["created_at"]


async def test_parallel_commit_race(client):
    payloads = [
        reservation_payload(customer={"name": f"Parallel {n}", "phone": f"+1555000{n}", "email": f"p{n}@example.com"})
        for n in range(2)
    ]
    responses = await asyncio.gather(
        post_reservation(client, "parallel-0", payloads[0]),
        post_reservation(client, "parallel-1", payloads[1]),
    )

    status_codes = sorted(response.status_code for response in responses)
    assert status_codes == [201, 409]
    conflict = next(r for r in responses if r.status_code == 409)
    assert conflict.json()["detail"]["error"] == "no_capacity"


async def test_duplicate_customer_is_conflict(client):
    assert (await post_reservation(client, "dup-a", reservation_payload(party_size=2))).status_code == 201
    response = await post_reservation(client, "dup-b", reservation_payload(party_size=2))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "duplicate_reservation"


async def test_validation_failures_map_to_status_codes(client):
    missing_key = await client.post(f"{PREFIX}/reservations", json=reservation_payload())
    assert missing_key.status_code == 400
    assert missing_key.json()["detail"]["error"] == "missing_or_invalid_idempotency_key"

    bad_body = await post_reservation(client, "bad-body", reservation_payload(party_size=0))
    assert bad_body.status_code == 400
    assert bad_body.json()["detail"]["error"] == "invalid_params"

    off_grid = await post_reservation(client, "off-grid", reservation_payload(start_date_time="2025-09-08T20:07:00-03:00"))
    assert off_grid.status_code == 400
    assert off_grid.json()["detail"]["error"] == "invalid_input"

    early = await post_reservation(
        client, "early", reservation_payload(party_size=2, start_date_time="2025-09-08T11:45:00-03:00")
    )
    assert early.status_code == 422
    assert early.json()["detail"]["error"] == "outside_service_window"

    unknown = await post_reservation(client, "unknown", reservation_payload(restaurant_id="R404"))
    assert unknown.status_code == 404


async def test_start_time_formats(client):
    utc = await post_reservation(client, "utc-z", reservation_payload(start_date_time="2025-09-08T23:00:00Z"))
    assert utc.status_code == 201, utc.text
    assert utc.json()["start"].startswith("2025-09-08T20:00:00")

    naive = await post_reservation(client, "naive", reservation_payload(start_date_time="2025-09-08T20:00:00"))
    assert naive.status_code == 400
    assert naive.json()["detail"]["error"] == "invalid_input"

    garbage = await post_reservation(client, "garbage", reservation_payload(start_date_time="tomorrow at eight"))
    assert garbage.status_code == 400
    assert garbage.json()["detail"]["error"] == "invalid_params"


async def test_cancel_reservation(client):
    created = await post_reservation(client, "cancel-me", reservation_payload())
    reservation_id = created.json()["id"]

    response = await client.delete(f"{PREFIX}/reservations/{reservation_id}")
    assert response.status_code == 204

    again = await client.delete(f"{PREFIX}/reservations/{reservation_id}")
    assert again.status_code == 404

    rebooked = await post_reservation(client, "cancel-me", reservation_payload())
    assert rebooked.status_code == 201
    assert rebooked.json()["id"] != reservation_id


async def test_reservations_for_day(client):
    await post_reservation(client, "d1", reservation_payload())
    response = await client.get(f"{PREFIX}/reservations/day", params={"restaurant_id": "R1", "date": "2025-09-08"})
    assert response.status_code == 200
    body = response.json()
    assert body["date"] == "2025-09-08"
    assert len(body["items"]) == 1

    missing = await client.get(f"{PREFIX}/reservations/day", params={"restaurant_id": "R1"})
    assert missing.status_code == 400


async def test_availability_unknown_sector_is_not_found(client):
    response = await client.get(
        f"{PREFIX}/availability",
        params={"restaurant_id": "R1", "sector_id": "S404", "date": "2025-09-08", "party_size": 2},
    )
    assert response.status_code == 404


async def test_restaurants_and_floor_plan(client):
    listing = await client.get(f"{PREFIX}/restaurants")
    assert listing.status_code == 200
    assert listing.json()[0]["sectors"][0]["max_capacity"] in (6, 2)

    detail = await client.get(f"{PREFIX}/restaurants/R1")
    assert detail.status_code == 200
    assert detail.json()["timezone"] == "America/Argentina/Buenos_Aires"
    assert (await client.get(f"{PREFIX}/restaurants/R404")).status_code == 404

    await post_reservation(client, "fp", reservation_payload())
    plan = await client.get(
        f"{PREFIX}/availability/floor-plan",
        params={"restaurant_id": "R1", "sector_id": "S1", "time": "2025-09-08T20:30:00-03:00"},
    )
    assert plan.status_code == 200
    occupied = [t["id"] for t in plan.json()["tables"] if t["is_occupied"]]
    assert occupied == ["T4"]
