"""Entry point: starts the NiceGUI server with the trip REST API mounted."""

import asyncio
import logging
import logging.handlers
import os

from nicegui import app, ui

from api import router, trip_controller
from database import init_db

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
LOG_DIR = os.environ.get("LOG_DIR", "/data" if os.path.isdir("/data") else ".")
LOG_FILE = os.path.join(LOG_DIR, "trip-tracker.log")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3,
        ),
    ],
)
logger = logging.getLogger("triptracker")

# Quiet noisy libraries
logging.getLogger("watchfiles").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

TICK_INTERVAL_S = float(os.environ.get("TICK_INTERVAL_S", "1.0"))


async def _tick_loop():
    """Periodic tick owned by the host: readiness checks and live stats refresh."""
    while True:
        try:
            trip_controller.on_tick()
        except Exception:
            logger.exception("Trip tick failed")
        await asyncio.sleep(TICK_INTERVAL_S)


async def _start_ticks():
    app.state.tick_task = asyncio.create_task(_tick_loop())


async def _stop_ticks():
    task = getattr(app.state, "tick_task", None)
    if task is not None:
        task.cancel()


# Mount FastAPI REST endpoints for the phone client
app.include_router(router)

# Initialize the database tables and the tick task on startup
app.on_startup(init_db)
app.on_startup(_start_ticks)
app.on_shutdown(_stop_ticks)

ui.run(
    title="Trip Tracker",
    port=int(os.environ.get("PORT", "9443")),
    show=False,
    reload=False,
)
