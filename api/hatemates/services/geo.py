import math

from ..config import EARTH_RADIUS_KM, KM_PER_MILE


def miles_to_km(miles: float) -> float:
    return float(miles) * KM_PER_MILE


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance by the spherical law of cosines."""
    if lat1 == lat2 and lng1 == lng2:
        return 0.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta = math.radians(lng2 - lng1)
    cos_c = math.sin(phi1) * math.sin(phi2) + math.cos(phi1) * math.cos(phi2) * math.cos(delta)
    # Rounding can push the cosine a hair past 1.0 for coincident points.
    cos_c = max(-1.0, min(1.0, cos_c))
    return EARTH_RADIUS_KM * math.acos(cos_c)


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return round(distance_km(lat1, lng1, lat2, lng2) / KM_PER_MILE, 1)
