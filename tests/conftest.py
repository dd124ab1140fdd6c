import asyncio
import copy
import itertools
import operator
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from errors import (
    DuplicateBookingError, InfrastructureError, InventoryViolationError, NotCancellableError, NotFoundError,
    RideNotBookableError,
)

OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

ROUTE = [
    {"lat": 12.90, "lng": 77.60},
    {"lat": 12.95, "lng": 77.62},
    {"lat": 13.00, "lng": 77.65},
]


class InMemoryStore:
    """Same interface as FirestoreStore, backed by dicts.

    Every call yields to the event loop first, the way a network round trip
    would, so concurrent service calls interleave between store operations.
    Transactional methods run without yielding in between their reads and writes.
    """

    def __init__(self):
        self.collections = defaultdict(dict)
        self.failing = set()
        self._ids = itertools.count(1)

    async def _round_trip(self, action, collection):
        await asyncio.sleep(0)
        if (action, collection) in self.failing:
            raise InfrastructureError(f"{action} on {collection} unavailable")

    def put(self, collection, doc_id, data):
        self.collections[collection][doc_id] = copy.deepcopy(data)
        return doc_id

    def doc(self, collection, doc_id):
        return self.collections[collection][doc_id]

    async def get(self, collection, doc_id):
        await self._round_trip("get", collection)
        data = self.collections[collection].get(doc_id)
        if data is None:
            return None
        return {**copy.deepcopy(data), "id": doc_id}

    async def list(self, collection, filters=()):
        await self._round_trip("list", collection)
        documents = []
        for doc_id, data in self.collections[collection].items():
            if all(field in data and OPERATORS[op](data[field], value) for field, op, value in filters):
                documents.append({**copy.deepcopy(data), "id": doc_id})
        return documents

    async def create(self, collection, data):
        await self._round_trip("create", collection)
        doc_id = f"{collection.rstrip('s')}-{next(self._ids)}"
        return self.put(collection, doc_id, data)

    async def update(self, collection, doc_id, data):
        await self._round_trip("update", collection)
        if doc_id not in self.collections[collection]:
            raise NotFoundError(f"{collection} document {doc_id} not found")
        self.collections[collection][doc_id].update(copy.deepcopy(data))

    def _ride(self, ride_id):
        ride = self.collections["rides"].get(ride_id)
        if ride is None:
            raise NotFoundError(f"Ride {ride_id} not found")
        return ride

    @staticmethod
    def _bounded(doc_id, current, delta, upper):
        updated = current + delta
        if updated < 0 or updated > upper:
            raise InventoryViolationError(doc_id, current, delta)
        return updated

    async def increment_bounded(self, collection, doc_id, field, delta, upper_field):
        await self._round_trip("increment_bounded", collection)
        document = self.collections[collection].get(doc_id)
        if document is None:
            raise NotFoundError(f"{collection} document {doc_id} not found")
        document[field] = self._bounded(doc_id, document[field], delta, document[upper_field])
        return {**copy.deepcopy(document), "id": doc_id}

    async def reserve_seats(self, ride_id, passenger_id, booking_data):
        await self._round_trip("reserve_seats", "rides")
        ride = self._ride(ride_id)
        if ride["status"] != "scheduled":
            raise RideNotBookableError()
        passengers = ride.get("activePassengers", [])
        if passenger_id in passengers:
            raise DuplicateBookingError()
        available = self._bounded(ride_id, ride["availableSeats"], -booking_data["seatsBooked"], ride["totalSeats"])
        ride["availableSeats"] = available
        ride["activePassengers"] = passengers + [passenger_id]
        return self.put("bookings", f"booking-{next(self._ids)}", booking_data)

    async def release_seats(self, booking_id, expected_status, updates):
        await self._round_trip("release_seats", "bookings")
        booking = self.collections["bookings"].get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking["status"] != expected_status:
            return False
        ride = self._ride(booking["rideId"])
        available = self._bounded(booking["rideId"], ride["availableSeats"], booking["seatsBooked"], ride["totalSeats"])
        booking.update(copy.deepcopy(updates))
        ride["availableSeats"] = available
        ride["activePassengers"] = [p for p in ride.get("activePassengers", []) if p != booking["passengerId"]]
        return True

    async def close_ride(self, ride_id):
        await self._round_trip("close_ride", "rides")
        ride = self._ride(ride_id)
        if ride["status"] != "scheduled":
            raise NotCancellableError()
        for booking in self.collections["bookings"].values():
            if booking["rideId"] == ride_id and booking["status"] == "confirmed":
                return False
        ride["status"] = "cancelled"
        return True


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_ride(store):
    """Seed a scheduled ride three hours out; keyword arguments override fields"""
    counter = itertools.count(1)

    def _make_ride(**overrides):
        now = datetime.now(timezone.utc)
        ride = {
            "driverId": "driver-1",
            "vehicleId": "vehicle-1",
            "origin": "Koramangala",
            "destination": "Hebbal",
            "originLatLng": {"lat": 12.90, "lng": 77.60},
            "destLatLng": {"lat": 13.00, "lng": 77.65},
            "route": ROUTE,
            "stops": [],
            "distanceKm": 12.4,
            "etaMinutes": 35,
            "departureTime": now + timedelta(hours=3),
            "totalSeats": 4,
            "pricePerSeat": 150.0,
            "status": "scheduled",
            "createdAt": now,
        }
        ride.update(overrides)
        ride.setdefault("availableSeats", ride["totalSeats"])
        ride_id = overrides.pop("id", None) or f"ride-{next(counter)}"
        ride.pop("id", None)
        return store.put("rides", ride_id, ride)

    return _make_ride


@pytest.fixture
def make_booking(store):
    counter = itertools.count(1)

    def _make_booking(ride_id, passenger_id, seats=1, status="confirmed", **overrides):
        booking = {
            "rideId": ride_id,
            "passengerId": passenger_id,
            "seatsBooked": seats,
            "totalPrice": 150.0 * seats,
            "status": status,
            "bookingTime": datetime.now(timezone.utc),
        }
        booking.update(overrides)
        ride = store.collections["rides"].get(ride_id)
        if ride is not None and booking["status"] in ("confirmed", "completed"):
            ride.setdefault("activePassengers", []).append(passenger_id)
        return store.put("bookings", f"seeded-booking-{next(counter)}", booking)

    return _make_booking


@pytest.fixture
def profiles(store):
    store.put("users", "driver-1", {"phoneNumber": "+911234567890", "firstName": "Asha", "role": "driver"})
    store.put("users", "passenger-1", {"phoneNumber": "+919876543210", "firstName": "Ravi", "role": "passenger"})
    store.put("vehicles", "vehicle-1", {
        "id": "vehicle-1", "userId": "driver-1", "model": "Swift", "plateNumber": "KA01AB1234",
        "color": "white", "capacity": 4,
    })
    return store


@pytest.fixture
def client(store):
    from main import app

    app.state.store = store
    app.state.routes_client = None
    return TestClient(app)
