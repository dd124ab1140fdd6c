from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import date as Date, datetime
from typing import List
from enum import Enum


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

class RideStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

# Stored documents keep camelCase field names and plain string enum values
_document_config = ConfigDict(use_enum_values=True)


def _as_aware(value: datetime | None) -> datetime | None:
    # Naive instants are read in the platform's local timezone
    if value is not None and value.tzinfo is None:
        return value.astimezone()
    return value


class UserProfile(BaseModel):
    """Read-only profile data shown next to rides and bookings"""
    uid: str
    phoneNumber: str | None = None
    firstName: str | None = None
    lastName: str | None = None
    email: str | None = None
    role: str | None = None
    isDriverVerified: bool | None = None
    profileImage: str | None = None

    model_config = ConfigDict(extra="ignore")

class Vehicle(BaseModel):
    id: str
    userId: str
    model: str
    plateNumber: str
    color: str
    capacity: int

    model_config = ConfigDict(extra="ignore")


class RideDraft(BaseModel):
    """A ride as submitted by a driver, before it is published"""
    driverId: str = Field(min_length=1)
    vehicleId: str = Field(min_length=1)
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    originLatLng: LatLng
    destLatLng: LatLng
    route: List[LatLng] = Field(default_factory=list)
    stops: List[LatLng] = Field(default_factory=list)
    distanceKm: float | None = Field(default=None, ge=0)
    etaMinutes: float | None = Field(default=None, ge=0)
    departureTime: datetime
    totalSeats: int = Field(ge=1)
    pricePerSeat: float = Field(ge=0)

    model_config = _document_config

    @field_validator("departureTime")
    @classmethod
    def _departure_is_aware(cls, value):
        return _as_aware(value)

class Ride(RideDraft):
    """A published ride offered by a driver"""
    id: str
    availableSeats: int = Field(ge=0)
    status: RideStatus = RideStatus.SCHEDULED
    createdAt: datetime
    driver: UserProfile | None = None
    vehicle: Vehicle | None = None

    @field_validator("createdAt")
    @classmethod
    def _created_is_aware(cls, value):
        return _as_aware(value)

    @model_validator(mode="after")
    def _seats_within_total(self):
        if self.availableSeats > self.totalSeats:
            raise ValueError("availableSeats cannot exceed totalSeats")
        return self


class Booking(BaseModel):
    """A passenger's seat reservation on a ride"""
    id: str
    rideId: str
    passengerId: str
    seatsBooked: int = Field(ge=1)
    totalPrice: float = Field(ge=0)
    status: BookingStatus = BookingStatus.CONFIRMED
    bookingTime: datetime
    cancelledAt: datetime | None = None
    cancelReason: str | None = None
    timeBeforeDeparture: int | None = None
    ride: Ride | None = None
    passenger: UserProfile | None = None

    model_config = _document_config

    @field_validator("bookingTime", "cancelledAt")
    @classmethod
    def _times_are_aware(cls, value):
        return _as_aware(value)


class BookingCreate(BaseModel):
    rideId: str = Field(min_length=1)
    seats: int = Field(default=1, ge=1)

class BookingCancel(BaseModel):
    reason: str = Field(min_length=1)

class RideStatusUpdate(BaseModel):
    status: RideStatus


class RideFilters(BaseModel):
    status: RideStatus | None = None
    includeCancelled: bool = False
    driverId: str | None = None
    origin: str | None = None
    destination: str | None = None
    date: Date | None = None
    originLatLng: LatLng | None = None
    destLatLng: LatLng | None = None
    pickupLatLng: LatLng | None = None

class RouteSearch(BaseModel):
    """What a passenger is looking for: where they start, end and get picked up"""
    originLatLng: LatLng
    destLatLng: LatLng
    pickupLatLng: LatLng
    route: List[LatLng] = Field(default_factory=list)

class Directions(BaseModel):
    route: List[LatLng]
    distanceKm: float
    etaMinutes: float

class RideCancellation(BaseModel):
    rideId: str
    cancelledBookings: List[str]
    seatsReleased: int

class ConversationKey(BaseModel):
    """Identity a chat subsystem uses to open a driver/passenger conversation"""
    rideId: str
    participants: List[str]
