"""Trip lifecycle as a pure reducer.

    idle --start--> active --pause--> paused --resume--> active
    active|paused --end--> ended --finish--> idle
    active|paused --restart--> active (fresh trip)

Every function takes a TripState and returns a new one; subscribing to the
location source, timers and persistence belong to the caller (see
controller.TripController).
"""

import dataclasses
import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from errors import InvalidTransitionError
from kinematics import Position, TripStats, average_speed_kmh, ingest_position, new_trip_stats
from sampler import SamplerState, sample_fix

logger = logging.getLogger(__name__)


class TripPhase(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


@dataclass(frozen=True)
class TripState:
    phase: TripPhase = TripPhase.IDLE
    gps_ready: bool = False
    stats: Optional[TripStats] = None
    sampler: SamplerState = SamplerState()
    last_position: Optional[Position] = None
    pause_started_at: Optional[float] = None
    total_paused_ms: float = 0.0
    paused_ms_at_last_fix: float = 0.0
    thresholds: dict = field(default_factory=dict)

    @property
    def route_points(self) -> tuple:
        return self.sampler.points


def _require(state: TripState, action: str, *phases: TripPhase):
    if state.phase not in phases:
        raise InvalidTransitionError(action, state.phase)


def elapsed_active_ms(state: TripState, now: float) -> float:
    """Wall-clock time since the start minus every paused interval."""
    if state.stats is None:
        return 0.0
    end = state.stats.end_time if state.stats.end_time is not None else now
    elapsed = (end - state.stats.start_time) - state.total_paused_ms
    if state.pause_started_at is not None:
        elapsed -= end - state.pause_started_at
    return max(0.0, elapsed)


def authorize(state: TripState, ready: bool) -> TripState:
    return dataclasses.replace(state, gps_ready=ready)


def start_trip(state: TripState, now: float, thresholds: dict | None = None) -> TripState:
    _require(state, "start", TripPhase.IDLE)
    if not state.gps_ready:
        raise InvalidTransitionError("start without location access", state.phase)
    return TripState(
        phase=TripPhase.ACTIVE,
        gps_ready=True,
        stats=new_trip_stats(now),
        thresholds=dict(thresholds or {}),
    )


def pause_trip(state: TripState, now: float) -> TripState:
    _require(state, "pause", TripPhase.ACTIVE)
    return dataclasses.replace(state, phase=TripPhase.PAUSED, pause_started_at=now)


def resume_trip(state: TripState, now: float) -> TripState:
    _require(state, "resume", TripPhase.PAUSED)
    paused = max(0.0, now - state.pause_started_at)
    return dataclasses.replace(
        state,
        phase=TripPhase.ACTIVE,
        pause_started_at=None,
        total_paused_ms=state.total_paused_ms + paused,
    )


def end_trip(state: TripState, now: float) -> TripState:
    """Freeze the trip: fold any running pause in and stamp the end time."""
    _require(state, "end", TripPhase.ACTIVE, TripPhase.PAUSED)
    total_paused = state.total_paused_ms
    if state.pause_started_at is not None:
        total_paused += max(0.0, now - state.pause_started_at)
    ended = dataclasses.replace(
        state,
        phase=TripPhase.ENDED,
        pause_started_at=None,
        total_paused_ms=total_paused,
        stats=dataclasses.replace(state.stats, end_time=now),
    )
    avg = average_speed_kmh(ended.stats.total_distance, elapsed_active_ms(ended, now))
    return dataclasses.replace(ended, stats=dataclasses.replace(ended.stats, avg_speed=avg))


def finish_trip(state: TripState) -> TripState:
    """Ended -> Idle; statistics are dropped, location readiness is kept."""
    _require(state, "finish", TripPhase.ENDED)
    return TripState(gps_ready=state.gps_ready)


def restart_trip(state: TripState, now: float, thresholds: dict | None = None) -> TripState:
    """Discard the running trip and start a fresh one without passing through Ended."""
    _require(state, "restart", TripPhase.ACTIVE, TripPhase.PAUSED)
    if thresholds is None:
        thresholds = state.thresholds
    return start_trip(TripState(gps_ready=state.gps_ready), now, thresholds)


def reset_trip(state: TripState) -> TripState:
    _require(state, "reset", TripPhase.IDLE)
    return state


def fail_permission(state: TripState) -> TripState:
    """Location access was revoked: drop any trip and require re-authorization."""
    if state.phase is not TripPhase.IDLE:
        logger.warning("Discarding %s trip after location permission was denied", state.phase.value)
    return TripState(gps_ready=False)


def apply_fix(state: TripState, position: Position, now: Optional[float] = None) -> TripState:
    """Feed one fix; it only counts while the trip is active."""
    if state.phase is not TripPhase.ACTIVE:
        return state
    if now is None:
        now = position.timestamp

    previous = state.last_position
    stats = ingest_position(state.stats, position, previous, elapsed_active_ms(state, now))
    sampler, _ = sample_fix(
        state.sampler, position, previous, stats.current_speed, state.thresholds,
        paused_ms=state.total_paused_ms - state.paused_ms_at_last_fix,
    )
    return dataclasses.replace(
        state,
        stats=stats,
        sampler=sampler,
        last_position=position,
        paused_ms_at_last_fix=state.total_paused_ms,
    )
