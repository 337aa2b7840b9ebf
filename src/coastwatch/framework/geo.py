"""Great-circle distance and bounding-box helpers."""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0

# (min_lat, min_lon, max_lat, max_lon)
BoundingBox = tuple[float, float, float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def in_bbox(lat: float, lon: float, bbox: Optional[BoundingBox]) -> bool:
    """True if the point lies inside the box (inclusive). A None box matches everything."""
    if bbox is None:
        return True
    min_lat, min_lon, max_lat, max_lon = bbox
    return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon
