"""Route sampler: decides which fixes become route points.

Per fix, the first matching rule wins:

1. first fix of the trip                                   -> start
2. slower than stop_speed_kmh for longer than stop_duration_ms -> stop
3. heading turned more than direction_change_deg             -> direction-change
4. further than sample_distance_km from the last route point -> distance
5. longer than sample_interval_ms since the last route point -> time

Heading is measured from the previous raw fix and compared with the heading
recorded when the last route point was kept.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from geo import bearing_degrees, bearing_delta, distance_km
from kinematics import Position

logger = logging.getLogger(__name__)

STOP_SPEED_KMH = 1.0
STOP_DURATION_MS = 30_000
DIRECTION_CHANGE_DEG = 45.0
SAMPLE_DISTANCE_KM = 0.1
SAMPLE_INTERVAL_MS = 120_000


class RetainReason(str, enum.Enum):
    START = "start"
    STOP = "stop"
    DIRECTION_CHANGE = "direction-change"
    DISTANCE = "distance"
    TIME = "time"


@dataclass(frozen=True)
class RoutePoint:
    lat: float
    lng: float
    timestamp: float
    speed: float
    reason: RetainReason

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "timestamp": self.timestamp,
            "speed": self.speed,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class SamplerState:
    points: tuple = ()
    last_bearing: Optional[float] = None
    stopped_ms: float = 0.0


def _retain_reason(
    state: SamplerState,
    position: Position,
    speed_kmh: float,
    bearing: Optional[float],
    stopped_ms: float,
    thresholds: dict,
) -> Optional[RetainReason]:
    if not state.points:
        return RetainReason.START

    if (speed_kmh < thresholds.get("stop_speed_kmh", STOP_SPEED_KMH)
            and stopped_ms > thresholds.get("stop_duration_ms", STOP_DURATION_MS)):
        return RetainReason.STOP

    if bearing is not None and state.last_bearing is not None:
        turn = abs(bearing_delta(bearing, state.last_bearing))
        if turn > thresholds.get("direction_change_deg", DIRECTION_CHANGE_DEG):
            return RetainReason.DIRECTION_CHANGE

    last = state.points[-1]
    if distance_km(last.lat, last.lng, position.lat, position.lng) > thresholds.get(
        "sample_distance_km", SAMPLE_DISTANCE_KM
    ):
        return RetainReason.DISTANCE

    if position.timestamp - last.timestamp > thresholds.get("sample_interval_ms", SAMPLE_INTERVAL_MS):
        return RetainReason.TIME

    return None


def sample_fix(
    state: SamplerState,
    position: Position,
    previous: Optional[Position],
    speed_kmh: float,
    thresholds: dict | None = None,
    paused_ms: float = 0.0,
) -> tuple[SamplerState, Optional[RoutePoint]]:
    """Feed one fix; return the new sampler state and the retained point, if any.

    `paused_ms` is the paused time since `previous`; it does not count as
    time spent stopped.
    """
    thresholds = thresholds or {}

    stopped_ms = state.stopped_ms
    if speed_kmh < thresholds.get("stop_speed_kmh", STOP_SPEED_KMH):
        if previous is not None:
            stopped_ms += max(0.0, position.timestamp - previous.timestamp - paused_ms)
    else:
        stopped_ms = 0.0

    bearing = None
    # Standing still has no heading
    if previous is not None and (previous.lat, previous.lng) != (position.lat, position.lng):
        bearing = bearing_degrees(previous.lat, previous.lng, position.lat, position.lng)

    reason = _retain_reason(state, position, speed_kmh, bearing, stopped_ms, thresholds)

    last_bearing = state.last_bearing
    if last_bearing is None:
        # Seed the heading baseline as soon as one is known
        last_bearing = bearing

    if reason is None:
        return SamplerState(state.points, last_bearing, stopped_ms), None

    point = RoutePoint(
        lat=position.lat,
        lng=position.lng,
        timestamp=position.timestamp,
        speed=speed_kmh,
        reason=reason,
    )
    if bearing is not None:
        last_bearing = bearing
    if reason is RetainReason.STOP:
        stopped_ms = 0.0
    logger.debug("Route point %d kept (%s)", len(state.points), reason.value)
    return SamplerState(state.points + (point,), last_bearing, stopped_ms), point
