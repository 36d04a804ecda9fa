"""SQLAlchemy models for finished trips and algorithm configuration."""

import datetime
from sqlalchemy import Column, Integer, Float, String, DateTime, Text

from database import Base


class Trip(Base):
    """A finished trip as handed over by the trip controller."""

    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(String, nullable=True)  # HH:MM:SS of active time
    total_distance = Column(Float, default=0.0)  # km
    max_speed = Column(Float, default=0.0)  # km/h
    avg_speed = Column(Float, default=0.0)  # km/h
    elevation = Column(Float, default=0.0)  # last reading, m
    min_elevation = Column(Float, nullable=True)
    max_elevation = Column(Float, nullable=True)
    elevation_gain = Column(Float, default=0.0)
    start_location = Column(String, default="Unknown")
    end_location = Column(String, default="Unknown")
    position_count = Column(Integer, default=0)
    route_points = Column(Text, nullable=True)  # JSON list of sampled route points
    optimized_route = Column(Text, nullable=True)  # JSON list of {lat, lng}
    created_at = Column(DateTime, default=datetime.datetime.utcnow, index=True)


class Config(Base):
    """Key/value store for tunable algorithm thresholds."""

    __tablename__ = "config"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
