"""
Natours Backend: Spherical Geometry Helpers
============================================

What:  Great-circle math for the "tours within" and "distances" endpoints.
Why:   Start points are plain latitude/longitude columns, so proximity is
       computed here rather than by a database geo extension.
How:   Haversine central angle on a sphere. A cheap latitude band (radius
       converted to degrees) pre-filters rows in SQL; the exact angle is
       then checked in Python.

Units:
    Radius of the earth used to turn a distance into an angle:
        mi → 3963.2, km → 6378.1
    Distances are computed in metres (6378.1 km sphere) and multiplied by:
        mi → 0.000621371, km → 0.001
"""

import math
from typing import Tuple

from natours.exceptions import ValidationError

EARTH_RADIUS = {"mi": 3963.2, "km": 6378.1}
METERS_TO_UNIT = {"mi": 0.000621371, "km": 0.001}
EARTH_RADIUS_METERS = 6_378_100.0


def validate_unit(unit: str) -> str:
    if unit not in EARTH_RADIUS:
        raise ValidationError(message="Unit must be either 'mi' or 'km'.", field="unit")
    return unit


def parse_latlng(latlng: str) -> Tuple[float, float]:
    """Parse "lat,lng" into floats, checking ranges."""
    message = "Please provide latitude and longitude in the format lat,lng."
    parts = latlng.split(",")
    if len(parts) != 2:
        raise ValidationError(message=message, field="latlng")
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        raise ValidationError(message=message, field="latlng")
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValidationError(message=message, field="latlng")
    return lat, lng


def central_angle(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Angle between two points in radians (haversine formula)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(a)))


def radius_in_radians(distance: float, unit: str) -> float:
    return distance / EARTH_RADIUS[unit]


def latitude_band(lat: float, radius_rad: float) -> Tuple[float, float]:
    """
    Latitude range that contains every point within radius_rad of lat.

    Longitude is not narrowed: near the poles and across the antimeridian a
    longitude band is wrong, and the latitude band alone already removes
    most rows.
    """
    delta = math.degrees(radius_rad)
    return max(-90.0, lat - delta), min(90.0, lat + delta)


def distance_in_unit(lat1: float, lng1: float, lat2: float, lng2: float, unit: str) -> float:
    meters = central_angle(lat1, lng1, lat2, lng2) * EARTH_RADIUS_METERS
    return meters * METERS_TO_UNIT[unit]
