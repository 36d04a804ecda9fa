"""Trip controller: the stateful shell around the pure trip reducer.

Holds the current TripState, keeps the location subscription in step with the
trip phase, and on trip end runs route optimization, start/end labelling and
persistence. Fixes are reduced one at a time under a lock; a new fix waits
until the previous one has been fully applied.
"""

import dataclasses
import logging
import threading
import time
from typing import Callable, Optional

from archive import TripArchive
from errors import LocationError
from geo import speed_color
from kinematics import Position, TripStats, format_duration
from location import LocationSource
from optimizer import Router, optimize_route
from tracker import (
    TripPhase,
    TripState,
    apply_fix,
    authorize,
    elapsed_active_ms,
    end_trip,
    fail_permission,
    finish_trip,
    pause_trip,
    reset_trip,
    restart_trip,
    resume_trip,
    start_trip,
)

logger = logging.getLogger(__name__)


def stats_summary(stats: Optional[TripStats]) -> Optional[dict]:
    if stats is None:
        return None
    summary = {f.name: getattr(stats, f.name) for f in dataclasses.fields(stats) if f.name != "positions"}
    summary["position_count"] = len(stats.positions)
    return summary


class TripController:
    def __init__(
        self,
        source: LocationSource,
        geocoder=None,
        router: Optional[Router] = None,
        clock: Callable[[], float] | None = None,
    ):
        self.source = source
        self.geocoder = geocoder
        self.router = router
        self._clock = clock or (lambda: time.time() * 1000)
        self._state = TripState()
        self._lock = threading.RLock()
        self._subscription: Optional[int] = None
        self.last_error: Optional[LocationError] = None

    @property
    def state(self) -> TripState:
        return self._state

    def _sync_subscription(self):
        """Exactly one subscription while active, none otherwise."""
        active = self._state.phase is TripPhase.ACTIVE
        if active and self._subscription is None:
            self._subscription = self.source.subscribe(self.on_fix, self.on_location_error)
        elif not active and self._subscription is not None:
            self.source.unsubscribe(self._subscription)
            self._subscription = None

    # ------------------------------------------------------------------
    # Location access
    # ------------------------------------------------------------------

    def request_gps_permission(self) -> bool:
        """Ask the location source for a fix; readiness follows the outcome."""
        try:
            self.source.get_once()
        except LocationError as e:
            self.last_error = e
            if e.is_fatal:
                logger.error("Location permission denied: %s", e.message)
                self._deny_permission()
            else:
                logger.warning("Location not available yet: %s", e.message)
            return self._state.gps_ready

        with self._lock:
            if not self._state.gps_ready:
                logger.info("Location access ready")
            self._state = authorize(self._state, True)
            self.last_error = None
        return True

    def _deny_permission(self):
        with self._lock:
            if self._state.phase is TripPhase.ENDED:
                # end() is still saving this trip and takes it to idle itself
                self._state = authorize(self._state, False)
            else:
                self._state = fail_permission(self._state)
                self._sync_subscription()

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    def start(self, thresholds: dict | None = None) -> dict:
        with self._lock:
            self._state = start_trip(self._state, self._clock(), thresholds)
            self._sync_subscription()
        logger.info("Trip started")
        return self.snapshot()

    def pause(self) -> dict:
        with self._lock:
            self._state = pause_trip(self._state, self._clock())
            self._sync_subscription()
        logger.info("Trip paused")
        return self.snapshot()

    def resume(self) -> dict:
        with self._lock:
            self._state = resume_trip(self._state, self._clock())
            self._sync_subscription()
        logger.info("Trip resumed (%.0f s paused in total)", self._state.total_paused_ms / 1000)
        return self.snapshot()

    def reset(self, thresholds: dict | None = None) -> dict:
        """Restart a running trip from scratch, or re-check location access when idle."""
        with self._lock:
            if self._state.phase is TripPhase.IDLE:
                self._state = reset_trip(self._state)
                idle = True
            else:
                self._state = restart_trip(self._state, self._clock(), thresholds)
                self._sync_subscription()
                idle = False
        if idle:
            self.request_gps_permission()
        else:
            logger.info("Trip restarted")
        return self.snapshot()

    def end(self, archive: Optional[TripArchive] = None) -> tuple[Optional[int], TripStats]:
        """Finish the trip, refine and label it, hand it to the archive.

        Returns (trip id or None, final stats). The controller is back in
        idle afterwards, even if persisting fails.
        """
        now = self._clock()
        with self._lock:
            self._state = end_trip(self._state, now)
            self._sync_subscription()
            ended = self._state
        logger.info(
            "Trip ended: %.2f km, %d positions, %d route points",
            ended.stats.total_distance, len(ended.stats.positions), len(ended.route_points),
        )

        try:
            stats = self._finalize(ended)
            trip_id = None
            if archive is not None:
                try:
                    trip_id = archive.insert(stats, ended.route_points, elapsed_active_ms(ended, now))
                except Exception:
                    logger.exception("Failed to save trip")
                    raise
        finally:
            with self._lock:
                if self._state.phase is TripPhase.ENDED:
                    self._state = finish_trip(self._state)
        return trip_id, stats

    def _finalize(self, ended: TripState) -> TripStats:
        stats = ended.stats
        route = self._optimize(ended)
        if route is not None:
            stats = dataclasses.replace(stats, route=route)

        if self.geocoder is not None and stats.positions:
            first, last = stats.positions[0], stats.positions[-1]
            stats = dataclasses.replace(
                stats,
                start_location=self.geocoder.location_label(first.lat, first.lng),
                end_location=self.geocoder.location_label(last.lat, last.lng),
            )
        return stats

    def _optimize(self, ended: TripState) -> Optional[list]:
        if self.router is None or len(ended.route_points) < 2:
            return None
        try:
            result = optimize_route(ended.route_points, self.router, ended.thresholds)
        except Exception:
            logger.exception("Route optimization crashed; saving trip without a route")
            return None
        if result.error is not None:
            logger.warning("Route optimization stopped early: %s", result.error)
        if result.route is not None:
            logger.info(
                "Optimized route: %d vertices after %d iteration(s), max deviation %.3f km",
                len(result.route), result.iterations, result.max_deviation_km,
            )
        return result.route

    # ------------------------------------------------------------------
    # Location source callbacks and host ticks
    # ------------------------------------------------------------------

    def on_fix(self, position: Position):
        with self._lock:
            self._state = apply_fix(self._state, position, self._clock())

    def on_location_error(self, error: LocationError):
        self.last_error = error
        if error.is_fatal:
            logger.error("Location permission denied during trip: %s", error.message)
            self._deny_permission()
        else:
            # Keep the subscription; the next fix may well arrive
            logger.warning("Transient location error (%s): %s", error.code.value, error.message)

    def on_tick(self) -> dict:
        """Called periodically by the host application."""
        if not self._state.gps_ready and self._state.phase is TripPhase.IDLE:
            self.request_gps_permission()
        return self.snapshot()

    def snapshot(self) -> dict:
        with self._lock:
            state = self._state
        now = self._clock()
        elapsed = elapsed_active_ms(state, now)
        current = state.stats.current_speed if state.stats else 0.0
        return {
            "phase": state.phase.value,
            "gps_ready": state.gps_ready,
            "last_error": self.last_error.code.value if self.last_error else None,
            "elapsed_ms": elapsed,
            "duration": format_duration(elapsed),
            "speed_color": list(speed_color(current)),
            "route_point_count": len(state.route_points),
            "stats": stats_summary(state.stats),
        }
