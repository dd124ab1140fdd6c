from models import Ride, RouteSearch
from .geo import haversine, is_near_polyline

# Fixed matching policy; not configurable per search
ORIGIN_RADIUS_KM = 5.0
DESTINATION_RADIUS_KM = 5.0
PICKUP_RADIUS_METERS = 300.0

def ride_matches(ride: Ride, search: RouteSearch) -> bool:
    """Whether a published ride can carry a passenger making this search.

    The driver must start and end within 5 km of the passenger's origin and
    destination, and the passenger's pickup point must lie within 300 m of
    the driver's route.
    """
    if not ride.originLatLng or not ride.destLatLng or not ride.route:
        return False
    if haversine(ride.originLatLng, search.originLatLng) > ORIGIN_RADIUS_KM:
        return False
    if haversine(ride.destLatLng, search.destLatLng) > DESTINATION_RADIUS_KM:
        return False
    return is_near_polyline(search.pickupLatLng, ride.route, PICKUP_RADIUS_METERS)

def filter_matching_rides(rides, search: RouteSearch):
    return [ride for ride in rides if ride_matches(ride, search)]
