from models import Ride, RideDraft, RideFilters, RideStatus, RouteSearch, UserProfile, Vehicle
from errors import InfrastructureError, NotFoundError, StatusTransitionError, UnauthorizedError
from firebase_client import RIDES, USERS, VEHICLES
from datetime import datetime, time, timezone
from pydantic import ValidationError
from .directions import directions_for_route, get_directions
from .matching import filter_matching_rides

import asyncio
import logging

logger = logging.getLogger(__name__)


async def _load_optional(store, collection: str, doc_id: str | None):
    """Best-effort read of display data; a failing backend leaves the field empty"""
    if not doc_id:
        return None
    try:
        return await store.get(collection, doc_id)
    except InfrastructureError as exc:
        logger.warning(f"Failed to fetch {collection} document {doc_id}: {exc}")
        return None

async def load_user_profile(store, user_id: str | None):
    data = await _load_optional(store, USERS, user_id)
    if data is None:
        return None
    try:
        return UserProfile.model_validate({**data, "uid": data["id"]})
    except ValidationError as exc:
        logger.warning(f"Error parsing user document {user_id}: {exc}")
        return None

async def load_vehicle(store, vehicle_id: str | None):
    data = await _load_optional(store, VEHICLES, vehicle_id)
    if data is None:
        return None
    try:
        return Vehicle.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Error parsing vehicle document {vehicle_id}: {exc}")
        return None

async def enrich_ride(ride: Ride, store) -> Ride:
    ride.driver, ride.vehicle = await asyncio.gather(
        load_user_profile(store, ride.driverId),
        load_vehicle(store, ride.vehicleId),
    )
    return ride

async def get_ride_document(ride_id: str, store) -> Ride:
    """Get a ride by its ID without display enrichment"""
    data = await store.get(RIDES, ride_id)
    if data is None:
        raise NotFoundError(f"Ride {ride_id} not found")
    return Ride.model_validate(data)

async def get_ride(ride_id: str, store) -> Ride:
    ride = await get_ride_document(ride_id, store)
    return await enrich_ride(ride, store)

def _day_bounds(day):
    # Start and end of the calendar day in the platform's local timezone
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day, time.max).astimezone()
    return start, end

def _query_filters(filters: RideFilters):
    query = []
    if filters.status:
        query.append(("status", "==", RideStatus(filters.status).value))
    elif not filters.includeCancelled:
        query.append(("status", "!=", RideStatus.CANCELLED.value))
    if filters.driverId:
        query.append(("driverId", "==", filters.driverId))
    if filters.origin:
        query.append(("origin", "==", filters.origin))
    if filters.destination:
        query.append(("destination", "==", filters.destination))
    if filters.date:
        start, end = _day_bounds(filters.date)
        query.append(("departureTime", ">=", start))
        query.append(("departureTime", "<=", end))
    return query

async def list_rides(filters: RideFilters, store):
    """List rides matching the filters, latest departure first.

    Geographic matching only applies when origin, destination and pickup
    coordinates are all given; a partial set is ignored.
    """
    rides = []
    for ride_data in await store.list(RIDES, _query_filters(filters)):
        try:
            rides.append(Ride.model_validate(ride_data))
        except ValidationError as exc:
            logger.warning(f"Error parsing ride document {ride_data.get('id')}: {exc}")

    if filters.originLatLng and filters.destLatLng and filters.pickupLatLng:
        search = RouteSearch(
            originLatLng=filters.originLatLng,
            destLatLng=filters.destLatLng,
            pickupLatLng=filters.pickupLatLng,
        )
        rides = filter_matching_rides(rides, search)

    rides.sort(key=lambda ride: ride.departureTime, reverse=True)
    await asyncio.gather(*(enrich_ride(ride, store) for ride in rides))
    return rides

async def create_new_ride(draft: RideDraft, store, routes_client=None) -> Ride:
    """Publish a driver's ride with its full seat inventory"""
    if len(draft.route) < 2:
        directions = await get_directions(draft.originLatLng, draft.destLatLng, draft.stops, routes_client)
    else:
        directions = directions_for_route(draft.route)

    ride_data = draft.model_dump()
    ride_data["route"] = [point.model_dump() for point in directions.route]
    if ride_data["distanceKm"] is None:
        ride_data["distanceKm"] = directions.distanceKm
    if ride_data["etaMinutes"] is None:
        ride_data["etaMinutes"] = directions.etaMinutes
    ride_data["availableSeats"] = draft.totalSeats
    ride_data["status"] = RideStatus.SCHEDULED.value
    ride_data["createdAt"] = datetime.now(timezone.utc)
    ride_data["activePassengers"] = []

    ride_id = await store.create(RIDES, ride_data)
    logger.info(f"Created ride {ride_id} for driver {draft.driverId} with {draft.totalSeats} seats")
    return Ride.model_validate({**ride_data, "id": ride_id})

async def set_ride_status(ride_id: str, status: RideStatus, store, driver_id: str | None = None) -> Ride:
    """Change a ride's status without touching its seats.

    Cancelling through here does not cancel bookings; use cancel_ride for that.
    """
    ride = await get_ride_document(ride_id, store)
    if driver_id is not None and ride.driverId != driver_id:
        raise UnauthorizedError("You can only update your own rides")

    status = RideStatus(status)
    if ride.status == RideStatus.CANCELLED and status != RideStatus.CANCELLED:
        raise StatusTransitionError(f"Ride {ride_id} is cancelled and cannot become {status.value}")

    await store.update(RIDES, ride_id, {"status": status.value})
    ride.status = status.value
    logger.info(f"Ride {ride_id} status set to {status.value}")
    return ride

async def adjust_available_seats(ride_id: str, delta: int, store) -> Ride:
    """Atomically add `delta` seats; raises InventoryViolationError outside [0, totalSeats]"""
    ride_data = await store.increment_bounded(RIDES, ride_id, "availableSeats", delta, "totalSeats")
    return Ride.model_validate(ride_data)
