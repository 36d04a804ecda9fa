"""Tests for trip persistence and the history listing."""

import dataclasses
import datetime
import json

from archive import TripArchive, trip_to_dict
from database import get_thresholds
from kinematics import new_trip_stats
from models import Config
from sampler import RetainReason, RoutePoint
from tests.gps_test_fixtures import BASE_MS, RIDE


def _stats(start=BASE_MS, minutes=10, **kwargs):
    stats = new_trip_stats(start)
    return dataclasses.replace(
        stats,
        end_time=start + minutes * 60_000,
        total_distance=kwargs.pop("total_distance", 3.2),
        max_speed=kwargs.pop("max_speed", 31.0),
        avg_speed=kwargs.pop("avg_speed", 19.2),
        positions=tuple(RIDE),
        **kwargs,
    )


# =====================================================================
# Archive tests
# =====================================================================

class TestTripArchive:
    def test_insert_and_get(self, db):
        archive = TripArchive(db)
        points = (RoutePoint(52.52, 13.405, BASE_MS, 10.0, RetainReason.START),)
        trip_id = archive.insert(
            _stats(start_location="Alexanderplatz", end_location="Hackescher Markt", route=[{"lat": 52.52, "lng": 13.405}]),
            points,
        )

        trip = archive.get(trip_id)
        assert trip.start_location == "Alexanderplatz"
        assert trip.end_location == "Hackescher Markt"
        assert trip.duration == "00:10:00"
        assert trip.position_count == len(RIDE)
        assert trip.start_time == datetime.datetime(2024, 6, 10, 6, 13, 20)
        assert json.loads(trip.route_points)[0]["reason"] == "start"
        assert json.loads(trip.optimized_route) == [{"lat": 52.52, "lng": 13.405}]

    def test_active_time_overrides_wall_clock(self, db):
        archive = TripArchive(db)
        trip_id = archive.insert(_stats(minutes=30), active_ms=5 * 60_000)
        assert archive.get(trip_id).duration == "00:05:00"

    def test_missing_route_is_null(self, db):
        archive = TripArchive(db)
        trip = archive.get(archive.insert(_stats()))
        assert trip.optimized_route is None
        assert trip_to_dict(trip)["optimized_route"] is None
        assert trip_to_dict(trip)["route_points"] == []

    def test_list_recent_newest_first(self, db):
        archive = TripArchive(db)
        ids = [archive.insert(_stats(start=BASE_MS + i * 3_600_000)) for i in range(3)]
        assert [t.id for t in archive.list_recent()] == list(reversed(ids))

    def test_list_recent_limit(self, db):
        archive = TripArchive(db)
        for i in range(12):
            archive.insert(_stats(start=BASE_MS + i * 3_600_000))
        assert len(archive.list_recent()) == 10
        assert len(archive.list_recent(limit=3)) == 3

    def test_delete(self, db):
        archive = TripArchive(db)
        trip_id = archive.insert(_stats())
        assert archive.delete(trip_id) is True
        assert archive.get(trip_id) is None
        assert archive.delete(trip_id) is False

    def test_trip_to_dict(self, db):
        archive = TripArchive(db)
        data = trip_to_dict(archive.get(archive.insert(_stats())))
        assert data["total_distance"] == 3.2
        assert data["start_time"] == "2024-06-10T06:13:20"
        assert data["end_time"] == "2024-06-10T06:23:20"
        assert data["start_location"] == "Unknown"


# =====================================================================
# Threshold config tests
# =====================================================================

class TestThresholds:
    def test_defaults_are_seeded(self, db):
        thresholds = get_thresholds(db)
        assert thresholds["stop_speed_kmh"] == 1.0
        assert thresholds["stop_duration_ms"] == 30000
        assert thresholds["optimizer_max_iterations"] == 5

    def test_override_from_config(self, db):
        db.query(Config).filter(Config.key == "sample_distance_km").update({"value": "0.25"})
        db.commit()
        assert get_thresholds(db)["sample_distance_km"] == 0.25

    def test_non_numeric_value_falls_back(self, db):
        db.query(Config).filter(Config.key == "direction_change_deg").update({"value": "steep"})
        db.commit()
        assert get_thresholds(db)["direction_change_deg"] == 45.0
