from fastapi import APIRouter, HTTPException, Request
from typing import List
from models import Booking, BookingCancel, BookingCreate, ConversationKey
from errors import RideServiceError, UnauthorizedError
from services.booking_service import (
    cancel_booking, create_booking, get_booking, get_bookings_for_passenger, get_conversation_key
)
from services.ride_service import get_ride_document

router = APIRouter()

@router.post("/bookings", response_model=Booking)
async def book_ride(booking: BookingCreate, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return await create_booking(booking.rideId, user_id, booking.seats, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error creating booking: {exc}")

@router.get("/bookings/passenger/{passenger_id}", response_model=List[Booking])
async def get_passenger_bookings(passenger_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id or user_id != passenger_id:
        raise HTTPException(status_code=403, detail="Unauthorized to view these bookings")

    try:
        return await get_bookings_for_passenger(passenger_id, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving bookings: {exc}")

@router.get("/bookings/{booking_id}", response_model=Booking)
async def get_booking_endpoint(booking_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        booking = await get_booking(booking_id, store)
        # Verify user has permission to view this booking
        if user_id != booking.passengerId:
            ride = await get_ride_document(booking.rideId, store)
            if user_id != ride.driverId:
                raise UnauthorizedError("Unauthorized to view this booking")
        return booking
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving booking: {exc}")

@router.put("/bookings/{booking_id}/cancel", response_model=Booking)
async def cancel_booking_endpoint(booking_id: str, cancellation: BookingCancel, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return await cancel_booking(booking_id, user_id, cancellation.reason, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error cancelling booking: {exc}")

@router.get("/bookings/{booking_id}/conversation", response_model=ConversationKey)
async def get_booking_conversation(booking_id: str, request: Request):
    store = request.app.state.store
    if not store:
        raise HTTPException(status_code=500, detail="Firestore not initialized")

    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user ID")

    try:
        return await get_conversation_key(booking_id, user_id, store)
    except RideServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving conversation: {exc}")
