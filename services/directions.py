from google.maps import routing_v2
from google.type import latlng_pb2
from models import Directions, LatLng
from .geo import as_coord, decode_polyline, haversine, route_length_km

import logging

logger = logging.getLogger(__name__)

# Average speed assumed when no provider duration is available
FALLBACK_SPEED_KMH = 50

FIELD_MASK = "routes.polyline.encodedPolyline,routes.distanceMeters,routes.duration"

def _waypoint(coord):
    lat, lng = as_coord(coord)
    return routing_v2.Waypoint(location=routing_v2.Location(lat_lng=latlng_pb2.LatLng(latitude=lat, longitude=lng)))

def eta_minutes(distance_km: float) -> int:
    return round(distance_km / FALLBACK_SPEED_KMH * 60)

def straight_line_directions(origin, destination) -> Directions:
    distance = haversine(origin, destination)
    return Directions(
        route=[LatLng(lat=lat, lng=lng) for lat, lng in (as_coord(origin), as_coord(destination))],
        distanceKm=distance,
        etaMinutes=eta_minutes(distance),
    )

def directions_for_route(route) -> Directions:
    """Directions for a route the driver already supplied"""
    distance = route_length_km(route)
    return Directions(route=list(route), distanceKm=distance, etaMinutes=eta_minutes(distance))

async def get_directions(origin, destination, waypoints=None, client=None) -> Directions:
    """Driving route between origin and destination through optional waypoints.

    Falls back to a straight line between the two endpoints whenever the
    Routes API is unavailable, errors, or finds no route.
    """
    if client is None:
        logger.warning("No routes client configured, using straight-line directions")
        return straight_line_directions(origin, destination)

    request = routing_v2.ComputeRoutesRequest(
        origin=_waypoint(origin),
        destination=_waypoint(destination),
        intermediates=[_waypoint(stop) for stop in waypoints or []],
        travel_mode=routing_v2.RouteTravelMode.DRIVE
    )
    metadata = (("x-goog-fieldmask", FIELD_MASK),)

    try:
        response = await client.compute_routes(request=request, metadata=metadata)
    except Exception as e:
        logger.warning(f"Error getting driving route: {type(e).__name__} - {e}")
        return straight_line_directions(origin, destination)

    if not response.routes:
        logger.warning("No driving route found between origin and destination")
        return straight_line_directions(origin, destination)

    route = response.routes[0]
    points = decode_polyline(route.polyline.encoded_polyline)
    if len(points) < 2:
        return straight_line_directions(origin, destination)

    return Directions(
        route=[LatLng(lat=lat, lng=lng) for lat, lng in points],
        distanceKm=route.distance_meters / 1000,
        etaMinutes=route.duration.total_seconds() / 60,
    )
