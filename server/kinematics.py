"""Position ingestion: turns one raw fix into updated trip statistics.

All times are epoch milliseconds, distances kilometres, speeds km/h (the fix
itself reports speed in m/s), elevations metres.
"""

import dataclasses
import math
from dataclasses import dataclass
from typing import Optional

from geo import distance_km

UNKNOWN_LOCATION = "Unknown"
MS_PER_HOUR = 3_600_000


@dataclass(frozen=True)
class Position:
    """One raw location fix."""

    lat: float
    lng: float
    altitude: Optional[float] = None
    speed: Optional[float] = None  # m/s as reported by the device
    timestamp: float = 0.0


@dataclass(frozen=True)
class TripStats:
    start_time: float
    end_time: Optional[float] = None
    total_distance: float = 0.0
    max_speed: float = 0.0
    avg_speed: float = 0.0
    current_speed: float = 0.0
    elevation: float = 0.0
    min_elevation: Optional[float] = None
    max_elevation: Optional[float] = None
    elevation_gain: float = 0.0
    start_location: str = UNKNOWN_LOCATION
    end_location: str = UNKNOWN_LOCATION
    positions: tuple = ()
    route: Optional[list] = None


def new_trip_stats(start_time: float) -> TripStats:
    return TripStats(start_time=start_time)


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def current_speed_kmh(position: Position, previous: Optional[Position]) -> float:
    """Speed for a fix: reported speed if any, else derived from the previous fix.

    Small negative readings from the device are clamped to zero.
    """
    if _finite(position.speed):
        return max(0.0, position.speed * 3.6)
    if previous is None:
        return 0.0
    dt_s = (position.timestamp - previous.timestamp) / 1000
    if dt_s <= 0:
        return 0.0
    speed = distance_km(previous.lat, previous.lng, position.lat, position.lng) / dt_s * 3600
    return speed if math.isfinite(speed) else 0.0


def average_speed_kmh(total_distance_km: float, active_elapsed_ms: float) -> float:
    if active_elapsed_ms <= 0:
        return 0.0
    return total_distance_km / (active_elapsed_ms / MS_PER_HOUR)


def ingest_position(
    stats: TripStats,
    position: Position,
    previous: Optional[Position],
    active_elapsed_ms: float,
) -> TripStats:
    """Return the statistics after logging `position`.

    `previous` is the last logged position of this trip (None for the first
    fix); `active_elapsed_ms` is wall-clock time since the start minus all
    paused time.
    """
    speed = current_speed_kmh(position, previous)

    total = stats.total_distance
    if previous is not None:
        step = distance_km(previous.lat, previous.lng, position.lat, position.lng)
        if math.isfinite(step):
            total += step

    min_elev, max_elev = stats.min_elevation, stats.max_elevation
    if _finite(position.altitude):
        elevation = position.altitude
        min_elev = elevation if min_elev is None else min(min_elev, elevation)
        max_elev = elevation if max_elev is None else max(max_elev, elevation)
    else:
        elevation = 0.0
    gain = (max_elev - min_elev) if min_elev is not None else 0.0

    return dataclasses.replace(
        stats,
        positions=stats.positions + (position,),
        current_speed=speed,
        max_speed=max(stats.max_speed, speed),
        total_distance=total,
        avg_speed=average_speed_kmh(total, active_elapsed_ms),
        elevation=elevation,
        min_elevation=min_elev,
        max_elevation=max_elev,
        elevation_gain=gain,
    )


def format_duration(milliseconds: float) -> str:
    """Format a duration as HH:MM:SS."""
    seconds = max(0, int(milliseconds // 1000))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours:02d}:{minutes:02d}:{seconds % 60:02d}"
