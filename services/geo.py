import math
import polyline

EARTH_RADIUS_KM = 6371.0

def as_coord(point):
    """Normalise a LatLng model, a {"lat", "lng"} dict or a (lat, lng) pair to a tuple"""
    if isinstance(point, dict):
        return point["lat"], point["lng"]
    if hasattr(point, "lat"):
        return point.lat, point.lng
    lat, lng = point
    return lat, lng

def decode_polyline(encoded_polyline_str):
    if not encoded_polyline_str:
        return []
    return polyline.decode(encoded_polyline_str)

def haversine(coord1, coord2):
    """Great-circle distance in km"""
    lat1, lon1 = as_coord(coord1)
    lat2, lon2 = as_coord(coord2)

    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    # Haversine formula
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return c * EARTH_RADIUS_KM

def interpolate(coord1, coord2, fraction):
    lat1, lon1 = coord1
    lat2, lon2 = coord2
    lat = lat1 + (lat2 - lat1) * fraction
    lon = lon1 + (lon2 - lon1) * fraction
    return lat, lon

def distance_to_segment(point, start, end):
    """Distance in meters from `point` to the segment start-end.

    The projection is computed on the flat lat/lng plane, which is close
    enough at the few-hundred-meter scale pickups are matched at.
    """
    p = as_coord(point)
    v = as_coord(start)
    w = as_coord(end)
    seg_lat = w[0] - v[0]
    seg_lng = w[1] - v[1]
    length_sq = seg_lat * seg_lat + seg_lng * seg_lng
    if length_sq == 0:
        return haversine(p, v) * 1000
    t = ((p[0] - v[0]) * seg_lat + (p[1] - v[1]) * seg_lng) / length_sq
    t = max(0.0, min(1.0, t))
    projection = interpolate(v, w, t)
    return haversine(p, projection) * 1000

def distance_to_polyline(point, route):
    """Minimum distance in meters from `point` to any segment of `route`"""
    if not route or len(route) < 2:
        return math.inf
    return min(
        distance_to_segment(point, route[i], route[i + 1])
        for i in range(len(route) - 1)
    )

def is_near_polyline(point, route, threshold_meters=300):
    for i in range(len(route) - 1):
        if distance_to_segment(point, route[i], route[i + 1]) <= threshold_meters:
            return True
    return False

def route_length_km(route):
    return sum(haversine(route[i], route[i + 1]) for i in range(len(route) - 1))
