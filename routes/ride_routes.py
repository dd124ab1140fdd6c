from fastapi import APIRouter, HTTPException, Request, Query
from datetime import date
from typing import List
from models import Booking, LatLng, Ride, RideCancellation, RideDraft, RideFilters, RideStatus, RideStatusUpdate
from errors import RideServiceError, UnauthorizedError
from services.ride_service import create_new_ride, get_ride, get_ride_document, list_rides, set_ride_status
from services.booking_service import get_ride_bookings
from services.cancellation_service import cancel_ride

router = APIRouter()

def _latlng(lat: float | None, lng: float | None):
    if lat is None or lng is None:
        return None
    return LatLng(lat=lat, lng=lng)

@router.get("/", response_model=List[Ride])
async def get_rides(
    request: Request,
    status: RideStatus | None = None,
    include_cancelled: bool = Query(False, alias="includeCancelled"),
    driver_id: str | None = Query(None, alias="driverId"),
    origin: str | None = None,
    destination: str | None = None,
    day: date | None = Query(None, alias="date", description="Departure day"),
    origin_lat: float | None = Query(None, alias="originLat", ge=-90, le=90),
    origin_lng: float | None = Query(None, alias="originLng", ge=-180, le=180),
    dest_lat: float | None = Query(None, alias="destLat", ge=-90, le=90),
    dest_lng: float | None = Query(None, alias="destLng", ge=-180, le=180),
    pickup_lat: float | None = Query(None, alias="pickupLat", ge=-90, le=90),
    pickup_lng: float | None = Query(None, alias="pickupLng", ge=-180, le=180),
):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    filters = RideFilters(
        status=status,
        includeCancelled=include_cancelled,
        driverId=driver_id,
        origin=origin,
        destination=destination,
        date=day,
        originLatLng=_latlng(origin_lat, origin_lng),
        destLatLng=_latlng(dest_lat, dest_lng),
        pickupLatLng=_latlng(pickup_lat, pickup_lng),
    )
    try:
        return await list_rides(filters, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving rides: {exc}")

@router.post("/", response_model=Ride)
async def create_ride(ride: RideDraft, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    # Ensure the driverId matches the logged-in user
    if ride.driverId != user_id:
        raise HTTPException(status_code=403, detail="You can only create rides for yourself")

    try:
        return await create_new_ride(ride, store, request.app.state.routes_client)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error creating ride: {exc}")

@router.get("/driver/{driver_id}", response_model=List[Ride])
async def get_driver_rides(driver_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id or user_id != driver_id:
        raise HTTPException(status_code=403, detail="Unauthorized to view these rides")

    try:
        return await list_rides(RideFilters(driverId=driver_id, includeCancelled=True), store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving rides: {exc}")

@router.get("/{ride_id}", response_model=Ride)
async def get_ride_endpoint(ride_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    try:
        return await get_ride(ride_id, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving ride: {exc}")

@router.put("/{ride_id}/status", response_model=Ride)
async def update_ride_status(ride_id: str, update: RideStatusUpdate, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return await set_ride_status(ride_id, update.status, store, driver_id=user_id)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error updating ride: {exc}")

@router.delete("/{ride_id}", response_model=RideCancellation)
async def delete_ride(ride_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return await cancel_ride(ride_id, user_id, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error cancelling ride: {exc}")

@router.get("/{ride_id}/bookings", response_model=List[Booking])
async def get_bookings_on_ride(ride_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        ride = await get_ride_document(ride_id, store)
        if ride.driverId != user_id:
            raise UnauthorizedError("Only the driver can view bookings on this ride")
        return await get_ride_bookings(ride_id, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving bookings: {exc}")
