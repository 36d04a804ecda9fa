"""Reverse geocoding via Nominatim (OpenStreetMap) for trip start/end labels."""

import logging
import os
import threading
import time
from typing import Optional

import requests

from kinematics import UNKNOWN_LOCATION

logger = logging.getLogger(__name__)

NOMINATIM_URL = os.environ.get("NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse")
USER_AGENT = os.environ.get("GEOCODER_USER_AGENT", "TripTracker/1.0")

# Address keys that name a point of interest rather than a street
POI_KEYS = ("amenity", "shop", "tourism", "leisure", "railway", "aeroway", "office", "historic")


def format_location_label(data: Optional[dict]) -> str:
    """Pick a short human-readable label from a Nominatim reverse result.

    Preference: POI name, then road + house number, then the settlement,
    then the first part of the display name.
    """
    if not data:
        return UNKNOWN_LOCATION
    address = data.get("address") or {}

    for key in POI_KEYS:
        if address.get(key):
            return address[key]

    if address.get("road"):
        if address.get("house_number"):
            return f"{address['road']} {address['house_number']}"
        return address["road"]

    settlement = address.get("city") or address.get("town") or address.get("village")
    if settlement:
        return settlement

    display_name = (data.get("display_name") or "").split(",")[0].strip()
    return display_name or UNKNOWN_LOCATION


class NominatimGeocoder:
    """Rate-limited Nominatim client (max 1 request per second per OSM policy)."""

    def __init__(self, url: str = NOMINATIM_URL, min_interval_s: float = 1.1, timeout: float = 10):
        self.url = url
        self.min_interval_s = min_interval_s
        self.timeout = timeout
        self._last_call = 0.0
        self._lock = threading.Lock()

    def lookup(self, lat: float, lng: float) -> Optional[dict]:
        """Return the raw reverse-geocode result, or None on any failure."""
        with self._lock:
            elapsed = time.time() - self._last_call
            if elapsed < self.min_interval_s:
                time.sleep(self.min_interval_s - elapsed)

            try:
                resp = requests.get(
                    self.url,
                    params={
                        "lat": lat,
                        "lon": lng,
                        "format": "jsonv2",
                        "zoom": 18,
                        "addressdetails": 1,
                    },
                    headers={"User-Agent": USER_AGENT},
                    timeout=self.timeout,
                )
                self._last_call = time.time()
                if resp.status_code == 200:
                    data = resp.json()
                    if data and "error" not in data:
                        return data
                logger.warning("Nominatim returned status %d for %.5f,%.5f", resp.status_code, lat, lng)
            except (requests.RequestException, ValueError) as e:
                logger.warning("Nominatim reverse geocode failed: %s", e)

        return None

    def location_label(self, lat: float, lng: float) -> str:
        return format_location_label(self.lookup(lat, lng))
