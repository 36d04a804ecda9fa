"""Error types shared by the trip tracker core, its collaborators and the API."""

import enum


class TripTrackerError(RuntimeError):
    """Base class for trip tracker failures."""


class InvalidTransitionError(TripTrackerError):
    """Raised when a lifecycle action is not allowed in the current phase."""

    def __init__(self, action: str, phase):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while trip is {getattr(phase, 'value', phase)}")


class LocationErrorCode(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


class LocationError(TripTrackerError):
    """A failure reported by the location source."""

    def __init__(self, code: LocationErrorCode, message: str = ""):
        self.code = LocationErrorCode(code)
        self.message = message or self.code.value.replace("_", " ")
        super().__init__(self.message)

    @property
    def is_fatal(self) -> bool:
        # Only a permission denial ends the trip; the rest are transient.
        return self.code is LocationErrorCode.PERMISSION_DENIED


class RoutingError(TripTrackerError):
    """Raised when the road-routing service cannot be reached or answers badly."""


class OptimizerError(TripTrackerError):
    """Describes why the route optimizer stopped before accepting a route."""
