"""Trip archive: persists finished trips and lists them back, newest first."""

import datetime
import json
import logging
from typing import Optional

from sqlalchemy.orm import Session

from kinematics import TripStats, format_duration
from models import Trip

logger = logging.getLogger(__name__)


def _to_datetime(epoch_ms: Optional[float]) -> Optional[datetime.datetime]:
    """Epoch milliseconds -> naive UTC datetime (the convention of every DateTime column)."""
    if epoch_ms is None:
        return None
    dt = datetime.datetime.fromtimestamp(epoch_ms / 1000, tz=datetime.timezone.utc)
    return dt.replace(tzinfo=None)


def trip_to_dict(trip: Trip) -> dict:
    return {
        "id": trip.id,
        "start_time": trip.start_time.isoformat() if trip.start_time else None,
        "end_time": trip.end_time.isoformat() if trip.end_time else None,
        "duration": trip.duration,
        "total_distance": trip.total_distance,
        "max_speed": trip.max_speed,
        "avg_speed": trip.avg_speed,
        "elevation": trip.elevation,
        "min_elevation": trip.min_elevation,
        "max_elevation": trip.max_elevation,
        "elevation_gain": trip.elevation_gain,
        "start_location": trip.start_location,
        "end_location": trip.end_location,
        "position_count": trip.position_count,
        "route_points": json.loads(trip.route_points) if trip.route_points else [],
        "optimized_route": json.loads(trip.optimized_route) if trip.optimized_route else None,
        "created_at": trip.created_at.isoformat() if trip.created_at else None,
    }


class TripArchive:
    def __init__(self, db: Session):
        self.db = db

    def insert(
        self,
        stats: TripStats,
        route_points: tuple = (),
        active_ms: Optional[float] = None,
    ) -> int:
        """Store a finished trip and return its id."""
        end = stats.end_time if stats.end_time is not None else stats.start_time
        if active_ms is None:
            active_ms = end - stats.start_time

        trip = Trip(
            start_time=_to_datetime(stats.start_time),
            end_time=_to_datetime(stats.end_time),
            duration=format_duration(active_ms),
            total_distance=stats.total_distance,
            max_speed=stats.max_speed,
            avg_speed=stats.avg_speed,
            elevation=stats.elevation,
            min_elevation=stats.min_elevation,
            max_elevation=stats.max_elevation,
            elevation_gain=stats.elevation_gain,
            start_location=stats.start_location,
            end_location=stats.end_location,
            position_count=len(stats.positions),
            route_points=json.dumps([p.to_dict() for p in route_points]),
            optimized_route=json.dumps(stats.route) if stats.route is not None else None,
        )
        self.db.add(trip)
        self.db.commit()
        self.db.refresh(trip)
        logger.info(
            "Trip %d saved: %.2f km, max %.0f km/h, %s -> %s",
            trip.id, trip.total_distance, trip.max_speed, trip.start_location, trip.end_location,
        )
        return trip.id

    def list_recent(self, limit: int = 10) -> list[Trip]:
        return (
            self.db.query(Trip)
            .order_by(Trip.created_at.desc(), Trip.id.desc())
            .limit(limit)
            .all()
        )

    def get(self, trip_id: int) -> Optional[Trip]:
        return self.db.query(Trip).filter(Trip.id == trip_id).first()

    def delete(self, trip_id: int) -> bool:
        trip = self.get(trip_id)
        if trip is None:
            return False
        self.db.delete(trip)
        self.db.commit()
        logger.info("Trip %d deleted", trip_id)
        return True
