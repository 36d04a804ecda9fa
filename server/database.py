"""Database setup and session management using SQLAlchemy + SQLite."""

import logging
import os

logger = logging.getLogger(__name__)

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///trips.db")

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables, run migrations, and seed the default thresholds."""
    from models import Config, Trip  # noqa: F401

    logger.info("Initializing database at %s", DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    _migrate()
    _seed_config()


def _migrate():
    """Add any missing columns to existing tables."""
    insp = inspect(engine)
    if "trips" in insp.get_table_names():
        columns = {c["name"] for c in insp.get_columns("trips")}
        if "optimized_route" not in columns:
            logger.info("Migrating: adding optimized_route column to trips table")
            with engine.begin() as conn:
                conn.execute(text("ALTER TABLE trips ADD COLUMN optimized_route TEXT"))


# Default algorithm thresholds (must match the sampler/optimizer module-level constants)
DEFAULT_THRESHOLDS = {
    "stop_speed_kmh": "1.0",
    "stop_duration_ms": "30000",
    "direction_change_deg": "45.0",
    "sample_distance_km": "0.1",
    "sample_interval_ms": "120000",
    "optimizer_max_iterations": "5",
    "optimizer_deviation_km": "0.05",
}


def _seed_config():
    """Insert default algorithm thresholds if not present."""
    db = SessionLocal()
    try:
        seed_thresholds(db)
    finally:
        db.close()


def seed_thresholds(db):
    from models import Config

    for key, value in DEFAULT_THRESHOLDS.items():
        if not db.query(Config).filter(Config.key == key).first():
            db.add(Config(key=key, value=value))
    db.commit()


def get_thresholds(db) -> dict:
    """Read algorithm thresholds from the Config table, falling back to the defaults."""
    from models import Config

    thresholds = {key: float(value) for key, value in DEFAULT_THRESHOLDS.items()}
    rows = db.query(Config).filter(Config.key.in_(thresholds.keys())).all()
    for row in rows:
        try:
            thresholds[row.key] = float(row.value)
        except ValueError:
            logger.warning("Ignoring non-numeric threshold %s=%r", row.key, row.value)
    return thresholds
