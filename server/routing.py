"""Road routing via an OSRM server."""

import logging
import os
from typing import Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import RoutingError

logger = logging.getLogger(__name__)

OSRM_URL = os.environ.get("OSRM_URL", "https://router.project-osrm.org")
OSRM_PROFILE = os.environ.get("OSRM_PROFILE", "driving")


def _build_retry() -> Retry:
    return Retry(
        total=3,
        backoff_factor=1.0,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )


def create_routing_session() -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=_build_retry())
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


class OsrmRouter:
    """Requests a driving route through an ordered list of (lat, lng) points."""

    def __init__(
        self,
        base_url: str = OSRM_URL,
        profile: str = OSRM_PROFILE,
        session: requests.Session | None = None,
        timeout: float = 15,
    ):
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.session = session or create_routing_session()
        self.timeout = timeout

    def route(self, coords: Sequence[tuple[float, float]]) -> list[dict]:
        """Return the route polyline as [{lat, lng}, ...]; [] when OSRM finds none."""
        if len(coords) < 2:
            return []
        # OSRM wants lng,lat pairs separated by semicolons
        path = ";".join(f"{lng:.6f},{lat:.6f}" for lat, lng in coords)
        url = f"{self.base_url}/route/v1/{self.profile}/{path}"
        try:
            resp = self.session.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RoutingError(f"OSRM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise RoutingError(f"OSRM returned invalid JSON (status {resp.status_code})") from e

        code = data.get("code")
        if code in ("NoRoute", "NoSegment"):
            logger.info("OSRM found no route through %d points (%s)", len(coords), code)
            return []
        if resp.status_code != 200 or code != "Ok":
            raise RoutingError(f"OSRM error {resp.status_code}: {code} {data.get('message', '')}".strip())

        routes = data.get("routes") or []
        if not routes:
            return []
        geometry = routes[0].get("geometry") or {}
        return [{"lat": lat, "lng": lng} for lng, lat in geometry.get("coordinates", [])]
