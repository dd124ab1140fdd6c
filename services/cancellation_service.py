from models import BookingStatus, RideCancellation, RideStatus
from errors import NotCancellableError, UnauthorizedError
from datetime import datetime, timezone
from firebase_client import BOOKINGS
from .ride_service import get_ride_document

import logging

logger = logging.getLogger(__name__)

async def _cancel_confirmed_bookings(ride_id: str, store):
    active_bookings = await store.list(BOOKINGS, [
        ("rideId", "==", ride_id),
        ("status", "==", BookingStatus.CONFIRMED.value),
    ])
    logger.info(f"Cancelling {len(active_bookings)} confirmed bookings on ride {ride_id}")

    cancelled = []
    for booking_data in active_bookings:
        booking_id = booking_data["id"]
        released = await store.release_seats(booking_id, BookingStatus.CONFIRMED.value, {
            "status": BookingStatus.CANCELLED.value,
            "cancelledAt": datetime.now(timezone.utc),
        })
        if not released:
            # The passenger cancelled in the meantime and already got the seats back
            continue
        cancelled.append(booking_data)
    return cancelled

async def cancel_ride(ride_id: str, driver_id: str, store) -> RideCancellation:
    """Cancel a scheduled ride along with every confirmed booking on it.

    Each booking is cancelled together with its seat refund. The ride is
    marked cancelled last, and only once no confirmed booking is left on it;
    a booking that lands in between is swept up on the next pass. If this
    stops halfway the ride is still scheduled, and running it again only
    picks up the bookings that are still confirmed.
    """
    ride = await get_ride_document(ride_id, store)

    if ride.driverId != driver_id:
        raise UnauthorizedError("You can only cancel your own rides")

    if ride.status != RideStatus.SCHEDULED:
        raise NotCancellableError()

    cancelled = []
    while True:
        cancelled.extend(await _cancel_confirmed_bookings(ride_id, store))
        if await store.close_ride(ride_id):
            break
        logger.info(f"Ride {ride_id} took new bookings while cancelling, sweeping again")

    seats_released = sum(booking["seatsBooked"] for booking in cancelled)
    logger.info(f"Ride {ride_id} cancelled, {seats_released} seats released from {len(cancelled)} bookings")
    return RideCancellation(
        rideId=ride_id,
        cancelledBookings=[booking["id"] for booking in cancelled],
        seatsReleased=seats_released,
    )
