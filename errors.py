class RideServiceError(Exception):
    """Base class for every error the ride and booking services raise"""
    status_code = 400


class NotFoundError(RideServiceError):
    status_code = 404


class UnauthorizedError(RideServiceError):
    status_code = 403


class SelfBookingError(RideServiceError):
    status_code = 400

    def __init__(self, message="You cannot book your own ride"):
        super().__init__(message)


class DuplicateBookingError(RideServiceError):
    status_code = 409

    def __init__(self, message="You have already booked this ride"):
        super().__init__(message)


class InsufficientSeatsError(RideServiceError):
    status_code = 409

    def __init__(self, available: int):
        self.available = available
        super().__init__(f"Only {available} seats available")


class RideNotBookableError(RideServiceError):
    status_code = 409

    def __init__(self, message="This ride is no longer available for booking"):
        super().__init__(message)


class BookingWindowClosedError(RideServiceError):
    status_code = 400

    def __init__(self, message="Cannot book rides less than 1 hour before departure"):
        super().__init__(message)


class AlreadyCancelledError(RideServiceError):
    status_code = 409

    def __init__(self, message="Booking is already cancelled"):
        super().__init__(message)


class NotCancellableError(RideServiceError):
    status_code = 409

    def __init__(self, message="This ride cannot be cancelled"):
        super().__init__(message)


class StatusTransitionError(RideServiceError):
    status_code = 409


class InventoryViolationError(RideServiceError):
    """A conditional seat update was rejected because it would leave [0, totalSeats]"""
    status_code = 409

    def __init__(self, doc_id: str, current: int, delta: int):
        self.doc_id = doc_id
        self.current = current
        self.delta = delta
        super().__init__(f"Cannot apply {delta:+d} seats to ride {doc_id} with {current} available")


class InfrastructureError(RideServiceError):
    status_code = 503
