"""REST API for the phone client: trip actions, fix uploads, trip history."""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from archive import TripArchive, trip_to_dict
from controller import TripController, stats_summary
from database import DEFAULT_THRESHOLDS, get_db, get_thresholds
from errors import InvalidTransitionError, LocationError, LocationErrorCode
from geocoding import NominatimGeocoder
from kinematics import Position
from location import PushLocationSource
from models import Config
from routing import OsrmRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

location_source = PushLocationSource()
trip_controller = TripController(
    location_source,
    geocoder=NominatimGeocoder(),
    router=OsrmRouter(),
)


def get_location_source() -> PushLocationSource:
    return location_source


def get_controller() -> TripController:
    return trip_controller


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class FixPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: Optional[float] = None
    speed: Optional[float] = Field(None, description="Metres per second as reported by the device")
    timestamp: float = Field(..., description="Capture time in epoch milliseconds")


class FixBatch(BaseModel):
    fixes: list[FixPoint]


class FixBatchResponse(BaseModel):
    received: int
    delivered: bool
    phase: str


class LocationErrorReport(BaseModel):
    code: LocationErrorCode
    message: str = ""


class TripResponse(BaseModel):
    id: int
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    total_distance: float
    max_speed: float
    avg_speed: float
    elevation: Optional[float] = None
    min_elevation: Optional[float] = None
    max_elevation: Optional[float] = None
    elevation_gain: Optional[float] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    position_count: Optional[int] = None
    route_points: list[dict] = []
    optimized_route: Optional[list[dict]] = None
    created_at: Optional[str] = None


class EndTripResponse(BaseModel):
    trip_id: Optional[int] = None
    trip: dict


def _transition(action):
    """Run a controller action, mapping illegal transitions to HTTP 409."""
    try:
        return action()
    except InvalidTransitionError as e:
        logger.warning("Rejected trip action: %s", e)
        raise HTTPException(status_code=409, detail=str(e))


# ---------------------------------------------------------------------------
# Location access and fixes
# ---------------------------------------------------------------------------

@router.post("/gps/authorize")
def authorize_gps(controller: TripController = Depends(get_controller)):
    ready = controller.request_gps_permission()
    snapshot = controller.snapshot()
    snapshot["gps_ready"] = ready
    return snapshot


@router.post("/fixes", response_model=FixBatchResponse)
def upload_fixes(
    batch: FixBatch,
    source: PushLocationSource = Depends(get_location_source),
    controller: TripController = Depends(get_controller),
):
    delivered = False
    for fix in sorted(batch.fixes, key=lambda f: f.timestamp):
        position = Position(
            lat=fix.latitude,
            lng=fix.longitude,
            altitude=fix.altitude,
            speed=fix.speed,
            timestamp=fix.timestamp,
        )
        delivered = source.deliver(position) > 0 or delivered
    logger.debug("Received %d fixes (delivered=%s)", len(batch.fixes), delivered)
    return FixBatchResponse(
        received=len(batch.fixes),
        delivered=delivered,
        phase=controller.state.phase.value,
    )


@router.post("/location-error")
def report_location_error(
    report: LocationErrorReport,
    source: PushLocationSource = Depends(get_location_source),
    controller: TripController = Depends(get_controller),
):
    source.fail(LocationError(report.code, report.message))
    return controller.snapshot()


# ---------------------------------------------------------------------------
# Trip lifecycle
# ---------------------------------------------------------------------------

@router.get("/trip")
def current_trip(controller: TripController = Depends(get_controller)):
    return controller.snapshot()


@router.post("/trip/start")
def start_trip(controller: TripController = Depends(get_controller), db: Session = Depends(get_db)):
    thresholds = get_thresholds(db)
    return _transition(lambda: controller.start(thresholds))


@router.post("/trip/pause")
def pause_trip(controller: TripController = Depends(get_controller)):
    return _transition(controller.pause)


@router.post("/trip/resume")
def resume_trip(controller: TripController = Depends(get_controller)):
    return _transition(controller.resume)


@router.post("/trip/reset")
def reset_trip(controller: TripController = Depends(get_controller), db: Session = Depends(get_db)):
    thresholds = get_thresholds(db)
    return _transition(lambda: controller.reset(thresholds))


@router.post("/trip/end", response_model=EndTripResponse)
def end_trip(controller: TripController = Depends(get_controller), db: Session = Depends(get_db)):
    trip_id, stats = _transition(lambda: controller.end(TripArchive(db)))
    return EndTripResponse(trip_id=trip_id, trip=stats_summary(stats))


# ---------------------------------------------------------------------------
# Trip history
# ---------------------------------------------------------------------------

@router.get("/trips", response_model=list[TripResponse])
def list_trips(limit: int = 10, db: Session = Depends(get_db)):
    trips = TripArchive(db).list_recent(limit)
    return [TripResponse(**trip_to_dict(t)) for t in trips]


@router.get("/trips/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: int, db: Session = Depends(get_db)):
    trip = TripArchive(db).get(trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return TripResponse(**trip_to_dict(trip))


@router.delete("/trips/{trip_id}", status_code=204)
def delete_trip(trip_id: int, db: Session = Depends(get_db)):
    if not TripArchive(db).delete(trip_id):
        raise HTTPException(status_code=404, detail="Trip not found")


# ---------------------------------------------------------------------------
# Algorithm thresholds
# ---------------------------------------------------------------------------

@router.get("/config/thresholds")
def read_thresholds(db: Session = Depends(get_db)):
    return get_thresholds(db)


@router.put("/config/thresholds")
def update_thresholds(body: dict[str, float], db: Session = Depends(get_db)):
    unknown = sorted(set(body) - set(DEFAULT_THRESHOLDS))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown thresholds: {', '.join(unknown)}")
    invalid = sorted(key for key, value in body.items() if not math.isfinite(value) or value <= 0)
    if invalid:
        raise HTTPException(status_code=400, detail=f"Thresholds must be positive: {', '.join(invalid)}")
    iterations = body.get("optimizer_max_iterations")
    if iterations is not None and (iterations < 1 or iterations != int(iterations)):
        raise HTTPException(status_code=400, detail="optimizer_max_iterations must be a whole number of at least 1")
    for key, value in body.items():
        row = db.query(Config).filter(Config.key == key).first()
        if row is None:
            db.add(Config(key=key, value=str(value)))
        else:
            row.value = str(value)
    db.commit()
    logger.info("Thresholds updated: %s", body)
    return get_thresholds(db)
