"""Shared pytest fixtures: in-memory DB, fake clock, location source, controller."""

import sys
import os

# Add server root to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base, seed_thresholds
from models import Config, Trip  # noqa: F401
from controller import TripController
from location import PushLocationSource
from tests.gps_test_fixtures import BASE_MS


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, now=BASE_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db(engine):
    """Provide a DB session seeded with the default thresholds."""
    Session = sessionmaker(bind=engine)
    session = Session()
    seed_thresholds(session)
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source(clock):
    return PushLocationSource(clock=clock)


@pytest.fixture
def geocoder():
    geo = Mock()
    geo.location_label.side_effect = ["Alexanderplatz", "Rosenthaler Straße 12"]
    return geo


@pytest.fixture
def road_router():
    """A router whose polyline simply runs through the requested points."""
    r = Mock()
    r.route.side_effect = lambda coords: [{"lat": lat, "lng": lng} for lat, lng in coords]
    return r


@pytest.fixture
def controller(source, clock, geocoder, road_router):
    return TripController(source, geocoder=geocoder, router=road_router, clock=clock)


@pytest.fixture
def ready_controller(controller, source, clock):
    """A controller that already has location access."""
    from tests.gps_test_fixtures import SCENARIO_START

    source.deliver(SCENARIO_START)
    assert controller.request_gps_permission()
    return controller
