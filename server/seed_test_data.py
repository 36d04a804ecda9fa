#!/usr/bin/env python3
"""Seed the database with GPS test fixture data for development and API testing.

Usage:
    python seed_test_data.py

This replays the 23-fix Berlin-Mitte bike ride through a trip controller,
ends the trip and stores it in the archive. Geocoding and routing are mocked
to avoid hitting Nominatim and OSRM.
"""

from unittest.mock import Mock

from archive import TripArchive
from controller import TripController
from database import SessionLocal, get_thresholds, init_db
from location import PushLocationSource
from models import Trip
from tests.gps_test_fixtures import RIDE


def seed():
    init_db()
    db = SessionLocal()

    if db.query(Trip).count():
        print("Trips already exist. Skipping seed.")
        db.close()
        return

    clock_now = [RIDE[0].timestamp]
    source = PushLocationSource(clock=lambda: clock_now[0])

    geocoder = Mock()
    geocoder.location_label.side_effect = [
        "Alexanderplatz",
        "Rosenthaler Straße 12",
    ]
    router = Mock()
    router.route.side_effect = lambda coords: [{"lat": lat, "lng": lng} for lat, lng in coords]

    controller = TripController(source, geocoder=geocoder, router=router, clock=lambda: clock_now[0])

    # Authorize with the first fix, then start
    source.deliver(RIDE[0])
    controller.request_gps_permission()
    controller.start(get_thresholds(db))

    for fix in RIDE:
        clock_now[0] = fix.timestamp
        source.deliver(fix)
    print(f"Replayed {len(RIDE)} fixes")

    trip_id, stats = controller.end(TripArchive(db))
    print(f"Saved trip {trip_id}: {stats.total_distance:.2f} km, "
          f"max {stats.max_speed:.1f} km/h, {stats.start_location} -> {stats.end_location}")

    db.close()
    print("\nDone! Fetch it with GET /api/trips")


if __name__ == "__main__":
    seed()
