from models import Booking, BookingStatus, ConversationKey, RideStatus
from errors import (
    AlreadyCancelledError, BookingWindowClosedError, DuplicateBookingError, InfrastructureError,
    InsufficientSeatsError, InventoryViolationError, NotFoundError, RideNotBookableError,
    SelfBookingError, UnauthorizedError,
)
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError
from firebase_client import BOOKINGS
from .ride_service import get_ride_document, load_user_profile

import asyncio
import logging
import math

logger = logging.getLogger(__name__)

# Bookings close this long before departure
BOOKING_CUTOFF = timedelta(hours=1)

# A passenger holds at most one booking per ride in these states
ACTIVE_STATUSES = [BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value]

def minutes_until(departure_time: datetime, now: datetime) -> int:
    return math.floor((departure_time - now).total_seconds() / 60)

async def get_booking(booking_id: str, store) -> Booking:
    data = await store.get(BOOKINGS, booking_id)
    if data is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return Booking.model_validate(data)

async def create_booking(ride_id: str, passenger_id: str, seats: int, store) -> Booking:
    """Reserve `seats` on a ride for a passenger.

    Every check runs against a snapshot of the ride first so callers get the
    most relevant error. The store then re-checks status, duplicates and seat
    bounds inside the transaction that takes the seats and writes the booking,
    so two racing requests cannot both win; the loser gets the matching error.
    """
    ride = await get_ride_document(ride_id, store)

    if ride.driverId == passenger_id:
        raise SelfBookingError()

    existing = await store.list(BOOKINGS, [
        ("rideId", "==", ride_id),
        ("passengerId", "==", passenger_id),
        ("status", "in", ACTIVE_STATUSES),
    ])
    if existing:
        raise DuplicateBookingError()

    if ride.availableSeats < seats:
        raise InsufficientSeatsError(ride.availableSeats)

    if ride.status != RideStatus.SCHEDULED:
        raise RideNotBookableError()

    now = datetime.now(timezone.utc)
    if ride.departureTime - now < BOOKING_CUTOFF:
        raise BookingWindowClosedError()

    booking_data = {
        "rideId": ride_id,
        "passengerId": passenger_id,
        "seatsBooked": seats,
        "totalPrice": ride.pricePerSeat * seats,
        "status": BookingStatus.CONFIRMED.value,
        "bookingTime": now,
    }
    try:
        booking_id = await store.reserve_seats(ride_id, passenger_id, booking_data)
    except InventoryViolationError as exc:
        logger.info(f"Passenger {passenger_id} lost the race for seats on ride {ride_id}")
        raise InsufficientSeatsError(exc.current) from exc

    logger.info(f"Booking {booking_id}: passenger {passenger_id} took {seats} seats on ride {ride_id}")
    return Booking.model_validate({**booking_data, "id": booking_id})

async def cancel_booking(booking_id: str, passenger_id: str, reason: str | None, store) -> Booking:
    """Cancel a passenger's booking and give its seats back to the ride.

    There is no minimum notice: a booking can be cancelled at any time, and
    how close to departure that happened is recorded instead.
    """
    booking = await get_booking(booking_id, store)

    if booking.passengerId != passenger_id:
        raise UnauthorizedError("Unauthorized")

    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelledError()

    ride = await get_ride_document(booking.rideId, store)
    now = datetime.now(timezone.utc)
    cancellation = {
        "status": BookingStatus.CANCELLED.value,
        "cancelledAt": now,
        "cancelReason": reason,
        "timeBeforeDeparture": minutes_until(ride.departureTime, now),
    }

    # Status flip and seat refund commit together, and only if nobody else cancelled first
    if not await store.release_seats(booking_id, booking.status, cancellation):
        raise AlreadyCancelledError()

    logger.info(f"Booking {booking_id} cancelled, {booking.seatsBooked} seats returned to ride {booking.rideId}")
    return booking.model_copy(update=cancellation)

def _parse_bookings(documents):
    bookings = []
    for booking_data in documents:
        try:
            bookings.append(Booking.model_validate(booking_data))
        except ValidationError as exc:
            logger.warning(f"Error parsing booking document {booking_data.get('id')}: {exc}")
    return bookings

async def _attach_ride(booking: Booking, store):
    try:
        booking.ride = await get_ride_document(booking.rideId, store)
    except (NotFoundError, InfrastructureError) as exc:
        logger.warning(f"Could not load ride {booking.rideId} for booking {booking.id}: {exc}")
    return booking

async def _attach_passenger(booking: Booking, store):
    booking.passenger = await load_user_profile(store, booking.passengerId)
    return booking

async def get_bookings_for_passenger(passenger_id: str, store):
    """All of a passenger's bookings with their rides, most recent first"""
    documents = await store.list(BOOKINGS, [("passengerId", "==", passenger_id)])
    bookings = _parse_bookings(documents)
    await asyncio.gather(*(_attach_ride(booking, store) for booking in bookings))
    bookings.sort(key=lambda booking: booking.bookingTime, reverse=True)
    return bookings

async def get_ride_bookings(ride_id: str, store):
    """Confirmed bookings on a ride with passenger profiles, in booking order"""
    documents = await store.list(BOOKINGS, [
        ("rideId", "==", ride_id),
        ("status", "==", BookingStatus.CONFIRMED.value),
    ])
    bookings = _parse_bookings(documents)
    await asyncio.gather(*(_attach_passenger(booking, store) for booking in bookings))
    bookings.sort(key=lambda booking: booking.bookingTime)
    return bookings

async def get_conversation_key(booking_id: str, user_id: str, store) -> ConversationKey:
    """The (ride, [driver, passenger]) pair a chat between the two is keyed by"""
    booking = await get_booking(booking_id, store)
    ride = await get_ride_document(booking.rideId, store)
    if user_id not in (booking.passengerId, ride.driverId):
        raise UnauthorizedError("Only the passenger and the driver can open this conversation")
    return ConversationKey(rideId=ride.id, participants=[ride.driverId, booking.passengerId])
