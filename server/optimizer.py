"""Post-trip route refinement against a road-routing service.

The sampled route points are sent to the router as one request. While some
route point lies further than `optimizer_deviation_km` from every vertex of
the returned polyline, the points are split at the worst offender into two
overlapping halves, each half is routed on its own, and the two polylines
are spliced. Requests are issued one at a time and the loop is bounded by
`optimizer_max_iterations` deviation checks.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from errors import OptimizerError, RoutingError
from geo import nearest_vertex_km

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 5
DEVIATION_THRESHOLD_KM = 0.05


class Router(Protocol):
    def route(self, coords: Sequence[tuple[float, float]]) -> list[dict]:
        """Return a {lat, lng} polyline through `coords`, or [] if none exists."""


@dataclass
class OptimizerResult:
    route: Optional[list[dict]] = None
    error: Optional[OptimizerError] = None
    iterations: int = 0
    max_deviation_km: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.route is not None and self.error is None


def max_deviation(points: Sequence, polyline: Sequence[dict]) -> tuple[int, float]:
    """Index and distance of the route point furthest from the polyline."""
    worst_idx, worst = 0, -1.0
    for i, p in enumerate(points):
        d = nearest_vertex_km(p.lat, p.lng, polyline)
        if d > worst:
            worst_idx, worst = i, d
    return worst_idx, worst


def _request(router: Router, points: Sequence) -> list[dict]:
    return router.route([(p.lat, p.lng) for p in points])


def splice(first: list[dict], second: list[dict]) -> list[dict]:
    """Join two polylines that share the junction vertex."""
    return list(first) + list(second[1:])


def optimize_route(points: Sequence, router: Router, thresholds: dict | None = None) -> OptimizerResult:
    thresholds = thresholds or {}
    # The first route is always checked at least once
    max_iterations = max(1, int(thresholds.get("optimizer_max_iterations", MAX_ITERATIONS)))
    tolerance = thresholds.get("optimizer_deviation_km", DEVIATION_THRESHOLD_KM)

    if len(points) < 2:
        return OptimizerResult(error=OptimizerError("need at least two route points"))

    try:
        candidate = _request(router, points)
    except RoutingError as e:
        return OptimizerResult(error=OptimizerError(f"initial route request failed: {e}"))
    if not candidate:
        return OptimizerResult(error=OptimizerError("routing service returned no route"))

    best, best_dev = candidate, None
    result = OptimizerResult()
    for iteration in range(1, max_iterations + 1):
        result.iterations = iteration
        idx, deviation = max_deviation(points, candidate)
        logger.debug("Optimizer iteration %d: max deviation %.4f km at point %d", iteration, deviation, idx)
        if best_dev is None or deviation < best_dev:
            best, best_dev = candidate, deviation

        if deviation < tolerance:
            break
        if iteration == max_iterations:
            break
        if idx == 0 or idx == len(points) - 1:
            # An endpoint cannot be split into two routable halves
            break

        try:
            first = _request(router, points[: idx + 1])
            second = _request(router, points[idx:])
        except RoutingError as e:
            result.error = OptimizerError(f"split request failed: {e}")
            break
        if not first or not second:
            result.error = OptimizerError("routing service returned no route for a split half")
            break
        candidate = splice(first, second)

    result.route = best
    result.max_deviation_km = best_dev
    return result
