from datetime import datetime, timedelta, timezone

import pytest


def ride_payload(**overrides):
    payload = {
        "driverId": "driver-1",
        "vehicleId": "vehicle-1",
        "origin": "Koramangala",
        "destination": "Hebbal",
        "originLatLng": {"lat": 12.90, "lng": 77.60},
        "destLatLng": {"lat": 13.00, "lng": 77.65},
        "departureTime": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
        "totalSeats": 3,
        "pricePerSeat": 100,
    }
    payload.update(overrides)
    return payload


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_ride(client, store):
    response = client.post("/", json=ride_payload(), headers={"X-User-ID": "driver-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["availableSeats"] == 3
    assert body["status"] == "scheduled"
    assert body["id"] in store.collections["rides"]


def test_create_ride_requires_identity(client):
    assert client.post("/", json=ride_payload()).status_code == 401
    response = client.post("/", json=ride_payload(), headers={"X-User-ID": "driver-2"})
    assert response.status_code == 403


def test_create_ride_rejects_invalid_seats(client):
    response = client.post("/", json=ride_payload(totalSeats=0), headers={"X-User-ID": "driver-1"})
    assert response.status_code == 422


def test_search_rides_by_route(client, make_ride):
    make_ride(id="ride-near")
    make_ride(id="ride-far", originLatLng={"lat": 12.50, "lng": 77.20})

    response = client.get("/", params={
        "originLat": 12.91, "originLng": 77.605,
        "destLat": 12.99, "destLng": 77.645,
        "pickupLat": 12.951, "pickupLng": 77.621,
    })

    assert response.status_code == 200
    assert [ride["id"] for ride in response.json()] == ["ride-near"]


def test_get_missing_ride_is_404(client):
    response = client.get("/ride-missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Ride ride-missing not found"


def test_driver_rides_include_cancelled(client, make_ride):
    make_ride(id="ride-open")
    make_ride(id="ride-cancelled", status="cancelled")
    make_ride(id="ride-other", driverId="driver-2")

    response = client.get("/driver/driver-1", headers={"X-User-ID": "driver-1"})
    assert {ride["id"] for ride in response.json()} == {"ride-open", "ride-cancelled"}
    assert client.get("/driver/driver-1", headers={"X-User-ID": "driver-2"}).status_code == 403


def test_book_and_cancel(client, store, make_ride):
    ride_id = make_ride(totalSeats=4)
    headers = {"X-User-ID": "passenger-1"}

    response = client.post("/bookings", json={"rideId": ride_id, "seats": 2}, headers=headers)
    assert response.status_code == 200
    booking = response.json()
    assert booking["totalPrice"] == 300.0
    assert store.doc("rides", ride_id)["availableSeats"] == 2

    response = client.put(f"/bookings/{booking['id']}/cancel", json={"reason": "Plans changed"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert store.doc("rides", ride_id)["availableSeats"] == 4


@pytest.mark.parametrize("user, seats, status, detail", [
    ("driver-1", 1, 400, "You cannot book your own ride"),
    ("passenger-1", 5, 409, "Only 4 seats available"),
])
def test_booking_errors_are_translated(client, make_ride, user, seats, status, detail):
    ride_id = make_ride(totalSeats=4)

    response = client.post("/bookings", json={"rideId": ride_id, "seats": seats}, headers={"X-User-ID": user})

    assert response.status_code == status
    assert response.json()["detail"] == detail


def test_store_outage_is_503(client, store, make_ride):
    ride_id = make_ride()
    store.failing.add(("reserve_seats", "rides"))

    response = client.post("/bookings", json={"rideId": ride_id, "seats": 1}, headers={"X-User-ID": "passenger-1"})

    assert response.status_code == 503
    assert store.collections["bookings"] == {}


def test_booking_visible_to_passenger_and_driver_only(client, make_ride, make_booking):
    booking_id = make_booking(make_ride(), "passenger-1")

    assert client.get(f"/bookings/{booking_id}", headers={"X-User-ID": "passenger-1"}).status_code == 200
    assert client.get(f"/bookings/{booking_id}", headers={"X-User-ID": "driver-1"}).status_code == 200
    assert client.get(f"/bookings/{booking_id}", headers={"X-User-ID": "stranger"}).status_code == 403


def test_passenger_bookings(client, make_ride, make_booking):
    make_booking(make_ride(), "passenger-1")

    response = client.get("/bookings/passenger/passenger-1", headers={"X-User-ID": "passenger-1"})
    assert response.status_code == 200
    assert len(response.json()) == 1
    assert response.json()[0]["ride"]["driverId"] == "driver-1"


def test_cancel_ride_cascade(client, store, make_ride, make_booking):
    ride_id = make_ride(totalSeats=5, availableSeats=2)
    make_booking(ride_id, "passenger-1", seats=1)
    make_booking(ride_id, "passenger-2", seats=2)

    response = client.delete(f"/{ride_id}", headers={"X-User-ID": "driver-1"})

    assert response.status_code == 200
    assert response.json()["seatsReleased"] == 3
    assert store.doc("rides", ride_id)["availableSeats"] == 5

    again = client.delete(f"/{ride_id}", headers={"X-User-ID": "driver-1"})
    assert again.status_code == 409


def test_ride_bookings_for_driver_only(client, make_ride, make_booking):
    ride_id = make_ride()
    make_booking(ride_id, "passenger-1")

    response = client.get(f"/{ride_id}/bookings", headers={"X-User-ID": "driver-1"})
    assert response.status_code == 200
    assert [b["passengerId"] for b in response.json()] == ["passenger-1"]
    assert client.get(f"/{ride_id}/bookings", headers={"X-User-ID": "passenger-1"}).status_code == 403


def test_update_ride_status(client, store, make_ride):
    ride_id = make_ride()

    response = client.put(f"/{ride_id}/status", json={"status": "in_progress"}, headers={"X-User-ID": "driver-1"})

    assert response.status_code == 200
    assert store.doc("rides", ride_id)["status"] == "in_progress"


def test_conversation_key(client, make_ride, make_booking):
    booking_id = make_booking(make_ride(), "passenger-1")

    response = client.get(f"/bookings/{booking_id}/conversation", headers={"X-User-ID": "passenger-1"})

    assert response.json()["participants"] == ["driver-1", "passenger-1"]


def test_uninitialised_store_is_500(client):
    client.app.state.store = None
    assert client.get("/").status_code == 500
