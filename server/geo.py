"""Geospatial math: haversine distance, bearings, and the speed color scale."""

import math
from typing import Optional, Sequence

EARTH_RADIUS_KM = 6371.0

# (speed km/h, (r, g, b)) stages of the speedometer color scale
SPEED_COLOR_STAGES = [
    (0.0, (255, 255, 255)),
    (30.0, (0, 212, 255)),
    (60.0, (0, 255, 136)),
    (90.0, (255, 215, 0)),
    (130.0, (255, 140, 0)),
    (180.0, (255, 107, 107)),
    (240.0, (220, 20, 60)),
    (300.0, (128, 0, 128)),
]


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres between two WGS-84 points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    # Rounding can push a a hair outside [0, 1] for identical or antipodal points
    a = min(1.0, max(0.0, a))
    d = EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    if not math.isfinite(d):
        return 0.0
    return d


def bearing_degrees(
    prev_lat: Optional[float], prev_lng: Optional[float], lat: float, lng: float,
) -> Optional[float]:
    """Heading from the previous point, in degrees within (-180, 180].

    Returns None ("unknown") when there is no previous point.
    """
    if prev_lat is None or prev_lng is None:
        return None
    angle = math.degrees(math.atan2(lng - prev_lng, lat - prev_lat))
    if angle <= -180.0:
        angle = 180.0
    return angle


def bearing_delta(a: float, b: float) -> float:
    """Circular difference a - b normalized to (-180, 180]."""
    d = (a - b) % 360.0
    if d > 180.0:
        d -= 360.0
    return d


def speed_color(speed_kmh: float) -> tuple[int, int, int]:
    """Interpolate the RGB color for a speed over SPEED_COLOR_STAGES."""
    first_speed, first_rgb = SPEED_COLOR_STAGES[0]
    last_speed, last_rgb = SPEED_COLOR_STAGES[-1]
    if speed_kmh is None or not math.isfinite(speed_kmh) or speed_kmh <= first_speed:
        return first_rgb
    if speed_kmh >= last_speed:
        return last_rgb

    for (lo_speed, lo_rgb), (hi_speed, hi_rgb) in zip(SPEED_COLOR_STAGES, SPEED_COLOR_STAGES[1:]):
        if lo_speed <= speed_kmh <= hi_speed:
            t = (speed_kmh - lo_speed) / (hi_speed - lo_speed)
            return tuple(round(lo + (hi - lo) * t) for lo, hi in zip(lo_rgb, hi_rgb))
    return last_rgb


def nearest_vertex_km(lat: float, lng: float, polyline: Sequence[dict]) -> float:
    """Distance from a point to the closest vertex of a {lat, lng} polyline."""
    best = float("inf")
    for vertex in polyline:
        d = distance_km(lat, lng, vertex["lat"], vertex["lng"])
        if d < best:
            best = d
    return best
