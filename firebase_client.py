from contextlib import asynccontextmanager, contextmanager
from fastapi import FastAPI
import firebase_admin
from firebase_admin import credentials, firestore_async
from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore import async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter
from config import settings
from errors import (
    DuplicateBookingError, InfrastructureError, InventoryViolationError, NotCancellableError, NotFoundError,
    RideNotBookableError,
)
from models import BookingStatus, RideStatus
from google.maps import routing_v2
from google.oauth2 import service_account
import logging

logger = logging.getLogger(__name__)

RIDES = "rides"
BOOKINGS = "bookings"
USERS = "users"
VEHICLES = "vehicles"


@contextmanager
def _store_errors(action: str, collection: str):
    try:
        yield
    except GoogleAPIError as exc:
        raise InfrastructureError(f"Firestore {action} on {collection} failed: {exc}") from exc


def _bounded(doc_id: str, current: int, delta: int, upper: int) -> int:
    updated = current + delta
    if updated < 0 or updated > upper:
        raise InventoryViolationError(doc_id, current, delta)
    return updated


async def _read(doc_ref, transaction, description: str):
    snapshot = await doc_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise NotFoundError(f"{description} not found")
    return snapshot.to_dict()


# Transaction bodies. Each one does all of its reads before any write, as
# Firestore requires, and is re-run by async_transactional on contention.

async def _increment_bounded(transaction, db, collection, doc_id, field, delta, upper_field):
    doc_ref = db.collection(collection).document(doc_id)
    data = await _read(doc_ref, transaction, f"{collection} document {doc_id}")
    data[field] = _bounded(doc_id, data[field], delta, data[upper_field])
    transaction.update(doc_ref, {field: data[field]})
    return {**data, "id": doc_id}


async def _reserve_seats(transaction, db, ride_id, passenger_id, booking_data):
    ride_ref = db.collection(RIDES).document(ride_id)
    ride = await _read(ride_ref, transaction, f"Ride {ride_id}")
    if ride.get("status") != RideStatus.SCHEDULED.value:
        raise RideNotBookableError()
    # Passengers holding a confirmed or completed booking on this ride
    passengers = ride.get("activePassengers", [])
    if passenger_id in passengers:
        raise DuplicateBookingError()
    available = _bounded(ride_id, ride["availableSeats"], -booking_data["seatsBooked"], ride["totalSeats"])

    booking_ref = db.collection(BOOKINGS).document()
    transaction.update(ride_ref, {"availableSeats": available, "activePassengers": passengers + [passenger_id]})
    transaction.create(booking_ref, booking_data)
    return booking_ref.id


async def _release_seats(transaction, db, booking_id, expected_status, updates):
    booking_ref = db.collection(BOOKINGS).document(booking_id)
    booking = await _read(booking_ref, transaction, f"Booking {booking_id}")
    if booking.get("status") != expected_status:
        return False
    ride_id = booking["rideId"]
    ride_ref = db.collection(RIDES).document(ride_id)
    ride = await _read(ride_ref, transaction, f"Ride {ride_id}")
    available = _bounded(ride_id, ride["availableSeats"], booking["seatsBooked"], ride["totalSeats"])
    passengers = [p for p in ride.get("activePassengers", []) if p != booking["passengerId"]]

    transaction.update(booking_ref, updates)
    transaction.update(ride_ref, {"availableSeats": available, "activePassengers": passengers})
    return True


async def _close_ride(transaction, db, ride_id):
    ride_ref = db.collection(RIDES).document(ride_id)
    ride = await _read(ride_ref, transaction, f"Ride {ride_id}")
    if ride.get("status") != RideStatus.SCHEDULED.value:
        raise NotCancellableError()
    confirmed = (
        db.collection(BOOKINGS)
        .where(filter=FieldFilter("rideId", "==", ride_id))
        .where(filter=FieldFilter("status", "==", BookingStatus.CONFIRMED.value))
    )
    async for _ in confirmed.stream(transaction=transaction):
        return False
    transaction.update(ride_ref, {"status": RideStatus.CANCELLED.value})
    return True


class FirestoreStore:
    """Document-collection access to Firestore.

    Every method is a single round trip or a single transaction against the
    backing store. Google API failures surface as InfrastructureError and are
    never retried here; retries are the caller's decision. Seat counts only
    change inside transactions that also write the booking they belong to.
    """

    def __init__(self, db):
        self._db = db

    async def _transaction(self, body, action: str, collection: str, *args):
        with _store_errors(action, collection):
            return await async_transactional(body)(self._db.transaction(), self._db, *args)

    async def get(self, collection: str, doc_id: str):
        with _store_errors("get", collection):
            snapshot = await self._db.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return {**snapshot.to_dict(), "id": snapshot.id}

    async def list(self, collection: str, filters=()):
        """Return every document matching all (field, op, value) filters"""
        query = self._db.collection(collection)
        for field, op, value in filters:
            query = query.where(filter=FieldFilter(field, op, value))
        documents = []
        with _store_errors("list", collection):
            async for snapshot in query.stream():
                documents.append({**snapshot.to_dict(), "id": snapshot.id})
        return documents

    async def create(self, collection: str, data: dict) -> str:
        with _store_errors("create", collection):
            _, doc_ref = await self._db.collection(collection).add(data)
        return doc_ref.id

    async def update(self, collection: str, doc_id: str, data: dict):
        with _store_errors("update", collection):
            await self._db.collection(collection).document(doc_id).update(data)

    async def increment_bounded(self, collection: str, doc_id: str, field: str, delta: int, upper_field: str):
        """Atomically add `delta` to `field`, keeping it within [0, document[upper_field]]"""
        return await self._transaction(
            _increment_bounded, "conditional increment", collection, collection, doc_id, field, delta, upper_field,
        )

    async def reserve_seats(self, ride_id: str, passenger_id: str, booking_data: dict) -> str:
        """Take the booking's seats off a scheduled ride and write the booking, as one unit.

        Raises RideNotBookableError, DuplicateBookingError or
        InventoryViolationError without writing anything.
        """
        return await self._transaction(_reserve_seats, "seat reservation", RIDES, ride_id, passenger_id, booking_data)

    async def release_seats(self, booking_id: str, expected_status: str, updates: dict) -> bool:
        """Apply `updates` to a booking still in `expected_status` and give its seats back.

        Returns False, writing nothing, when the booking has moved on.
        """
        return await self._transaction(_release_seats, "seat release", BOOKINGS, booking_id, expected_status, updates)

    async def close_ride(self, ride_id: str) -> bool:
        """Mark a scheduled ride cancelled unless it still has confirmed bookings"""
        return await self._transaction(_close_ride, "ride close", RIDES, ride_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    firebase_app = None
    db = None
    store = None
    routes_client = None
    try:
        cred = credentials.Certificate(settings.CREDENTIALS_FILE)
        firebase_app = firebase_admin.initialize_app(cred, {
            'databaseURL': settings.DATABASE_URL
        })
        db = firestore_async.client(app=firebase_app, database_id=settings.FIRESTORE_DATABASE_ID)
        store = FirestoreStore(db)
        logger.info("Firebase Admin SDK initialized successfully.")

        routes_credentials = service_account.Credentials.from_service_account_file(
            settings.CREDENTIALS_FILE,
            scopes=['https://www.googleapis.com/auth/cloud-platform']
        )
        routes_client = routing_v2.RoutesAsyncClient(credentials=routes_credentials)
        logger.info("Google Maps Routes API client initialized successfully.")
    except Exception as e:
        # Without a routes client ride creation falls back to straight-line routes
        logger.error(f"Error initializing Firebase Admin SDK: {e}")

    app.state.db = db
    app.state.store = store
    app.state.firebase_app = firebase_app
    app.state.routes_client = routes_client
    yield

    # --- Shutdown ---
    try:
        if firebase_app:
            firebase_admin.delete_app(firebase_app)
            logger.info("Firebase Admin SDK app deleted successfully.")
    except Exception as e:
        logger.error(f"Error deleting Firebase Admin SDK app: {e}")
