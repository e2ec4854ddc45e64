import pytest

from conftest import DESTINATION, PICKUP, offset


def driver_payload(n, location=PICKUP, **overrides):
    payload = {
        "first_name": f"Sam{n}",
        "last_name": "Driver",
        "email": f"sam{n}@example.com",
        "phone": f"+1555010{n:04d}",
        "vehicle_make": "Honda",
        "vehicle_model": "Civic",
        "vehicle_color": "Silver",
        "license_plate": f"API-{n:03d}",
        "status": "active",
        "background_check_status": "approved",
        "location": {"latitude": location[0], "longitude": location[1]},
    }
    payload.update(overrides)
    return payload


def ride_payload(rider_id):
    return {
        "rider_id": rider_id,
        "pickup": {"address": "333 Post St", "coordinates": {"latitude": PICKUP[0], "longitude": PICKUP[1]}},
        # GeoJSON order is [lng, lat]
        "destination": {
            "address": "Market & 8th",
            "coordinates": {"type": "Point", "coordinates": [DESTINATION[1], DESTINATION[0]]},
        },
    }


async def register_online_driver(client, n, location=PICKUP):
    res = await client.post("/drivers", json=driver_payload(n, location))
    assert res.status_code == 201
    driver_id = res.json()["id"]
    res = await client.patch(f"/drivers/{driver_id}/status", json={"is_online": True})
    assert res.status_code == 200
    return driver_id


async def register_rider(client, email="rita@example.com"):
    res = await client.post("/riders", json={"name": "Rita", "email": email})
    assert res.status_code == 201
    return res.json()["id"]


@pytest.mark.asyncio
async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_ride_request_accept_and_complete(client, notifier):
    """
    Full happy path: request, offer, accept, progress with OTP, complete.
    """
    rider_id = await register_rider(client)
    driver_id = await register_online_driver(client, 1)

    res = await client.post("/rides", json=ride_payload(rider_id))
    assert res.status_code == 201
    body = res.json()
    ride = body["ride"]
    assert ride["status"] == "requested"
    assert ride["estimated_fare"] == 13.49
    assert ride["destination_lat"] == DESTINATION[0]
    assert body["driver_candidates"] == 1
    assert notifier.driver_event_types(driver_id) == ["ride_offer"]

    res = await client.get(f"/drivers/{driver_id}/available-rides",
                           params={"latitude": PICKUP[0], "longitude": PICKUP[1]})
    assert [r["id"] for r in res.json()] == [ride["id"]]

    res = await client.post(f"/rides/{ride['id']}/accept", json={"driver_id": driver_id})
    assert res.status_code == 200
    assert res.json()["status"] == "matched"
    assert res.json()["driver_id"] == driver_id

    res = await client.get(f"/riders/{rider_id}/active-ride")
    assert res.json()["id"] == ride["id"]

    for status in ("driver_en_route", "arrived"):
        res = await client.patch(f"/rides/{ride['id']}/status", json={"driver_id": driver_id, "status": status})
        assert res.status_code == 200
    res = await client.patch(f"/rides/{ride['id']}/status",
                             json={"driver_id": driver_id, "status": "in_progress", "otp": ride["otp"]})
    assert res.json()["status"] == "in_progress"
    res = await client.patch(f"/rides/{ride['id']}/status", json={"driver_id": driver_id, "status": "completed"})
    assert res.json()["status"] == "completed"

    res = await client.get(f"/drivers/{driver_id}")
    assert res.json()["is_available"] is True
    assert res.json()["total_rides"] == 1
    res = await client.get(f"/riders/{rider_id}/active-ride")
    assert res.json() is None


@pytest.mark.asyncio
async def test_second_accept_conflicts(client):
    rider_id = await register_rider(client)
    d1 = await register_online_driver(client, 1)
    d2 = await register_online_driver(client, 2)
    ride_id = (await client.post("/rides", json=ride_payload(rider_id))).json()["ride"]["id"]

    assert (await client.post(f"/rides/{ride_id}/accept", json={"driver_id": d1})).status_code == 200
    res = await client.post(f"/rides/{ride_id}/accept", json={"driver_id": d2})
    assert res.status_code == 409
    assert res.json() == {
        "success": False,
        "error": {"code": "RIDE_ALREADY_ASSIGNED", "message": "Ride is already assigned to another driver"},
    }


@pytest.mark.asyncio
async def test_decline_acks_and_changes_nothing(client):
    rider_id = await register_rider(client)
    driver_id = await register_online_driver(client, 1)
    ride_id = (await client.post("/rides", json=ride_payload(rider_id))).json()["ride"]["id"]

    for _ in range(2):
        res = await client.post(f"/rides/{ride_id}/decline", json={"driver_id": driver_id})
        assert res.status_code == 200
        assert res.json()["declined"] is True

    assert (await client.get(f"/rides/{ride_id}")).json()["status"] == "requested"


@pytest.mark.asyncio
async def test_duplicate_active_ride_rejected(client):
    rider_id = await register_rider(client)
    assert (await client.post("/rides", json=ride_payload(rider_id))).status_code == 201
    res = await client.post("/rides", json=ride_payload(rider_id))
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "ACTIVE_RIDE_EXISTS"


@pytest.mark.asyncio
async def test_unknown_rider_and_ride(client):
    res = await client.post("/rides", json=ride_payload("nobody"))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "RIDER_NOT_FOUND"

    res = await client.get("/rides/missing")
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "RIDE_NOT_FOUND"


@pytest.mark.asyncio
async def test_request_validation_envelope(client):
    payload = ride_payload("r1")
    payload["pickup"]["coordinates"]["latitude"] = 123
    res = await client.post("/rides", json=payload)
    assert res.status_code == 422
    assert res.json()["success"] is False
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_rider_cancel_and_tracking(client, notifier):
    rider_id = await register_rider(client)
    driver_id = await register_online_driver(client, 1)
    ride_id = (await client.post("/rides", json=ride_payload(rider_id))).json()["ride"]["id"]
    await client.post(f"/rides/{ride_id}/accept", json={"driver_id": driver_id})

    lat, lon = offset(PICKUP, 1500)
    res = await client.post(f"/rides/{ride_id}/location",
                            json={"driver_id": driver_id, "location": {"latitude": lat, "longitude": lon}, "heading": 45})
    assert res.status_code == 200
    tracking = res.json()
    assert tracking["driver_location"]["latitude"] == pytest.approx(lat)
    assert tracking["estimated_arrival_minutes"] == 3

    res = await client.post(f"/rides/{ride_id}/cancel",
                            json={"actor": "rider", "actor_id": rider_id, "reason": "Found another ride"})
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert res.json()["cancelled_by"] == "rider"
    assert "ride_cancelled" in notifier.driver_event_types(driver_id)

    res = await client.get(f"/rides/{ride_id}/tracking")
    assert res.json()["status_display"] == "Ride Cancelled"

    res = await client.post(f"/rides/{ride_id}/cancel", json={"actor": "rider", "actor_id": rider_id})
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_stale_driver_heartbeat(client):
    driver_id = await register_online_driver(client, 1)
    fresh = {"location": {"latitude": 37.79, "longitude": -122.40}, "timestamp": "2030-01-01T12:00:00Z"}
    stale = {"location": {"latitude": 37.70, "longitude": -122.50}, "timestamp": "2030-01-01T11:59:00Z"}

    assert (await client.post(f"/drivers/{driver_id}/location", json=fresh)).json()["accepted"] is True
    res = await client.post(f"/drivers/{driver_id}/location", json=stale)
    assert res.json() == {"driver_id": driver_id, "accepted": False, "stale": True}
    assert (await client.get(f"/drivers/{driver_id}")).json()["latitude"] == 37.79


@pytest.mark.asyncio
async def test_driver_cannot_go_offline_mid_ride(client):
    rider_id = await register_rider(client)
    driver_id = await register_online_driver(client, 1)
    ride_id = (await client.post("/rides", json=ride_payload(rider_id))).json()["ride"]["id"]
    await client.post(f"/rides/{ride_id}/accept", json={"driver_id": driver_id})

    res = await client.patch(f"/drivers/{driver_id}/status", json={"is_online": False})
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "DRIVER_HAS_ACTIVE_RIDE"


@pytest.mark.asyncio
async def test_duplicate_registration(client):
    await register_rider(client)
    res = await client.post("/riders", json={"name": "Rita", "email": "rita@example.com"})
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "RIDER_EXISTS"


@pytest.mark.asyncio
async def test_error_envelope_is_documented(client):
    schema = (await client.get("/openapi.json")).json()
    assert "ErrorResponse" in schema["components"]["schemas"]

    accept = schema["paths"]["/rides/{ride_id}/accept"]["post"]["responses"]
    assert accept["409"]["content"]["application/json"]["schema"]["$ref"] == "#/components/schemas/ErrorResponse"
    assert "404" in schema["paths"]["/drivers/{driver_id}"]["get"]["responses"]
