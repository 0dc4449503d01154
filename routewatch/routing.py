"""Alternative route lookups against an OSRM server."""

from typing import Optional

import requests

from .config import CONFIG
from .errors import RoutingError
from .models import LatLng, Route
from .transport import TransportMode


class OSRMRoutingProvider:
    """Routing provider backed by the OSRM HTTP API.

    Talks to ``/route/v1/{profile}/{lon,lat;lon,lat}`` and converts the
    GeoJSON geometries it returns into Route objects. OSRM has no transit
    profile, so transit lookups fail with RoutingError.
    """

    PROFILES = {
        TransportMode.WALKING: "foot",
        TransportMode.CYCLING: "bike",
        TransportMode.DRIVING: "driving",
    }

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or CONFIG["osrm_base_url"]).rstrip("/")
        self.timeout = timeout or CONFIG["osrm_timeout"]
        self.http = session or requests

    @staticmethod
    def format_coordinates(coords: list[LatLng]) -> str:
        """Convert (lat, lng) pairs to OSRM's 'lon,lat;lon,lat' order"""
        return ";".join(f"{lng},{lat}" for lat, lng in coords)

    def _fetch(self, origin: LatLng, destination: LatLng, mode: TransportMode,
               alternatives: bool) -> list[Route]:
        profile = self.PROFILES.get(mode)
        if profile is None:
            raise RoutingError(f"OSRM has no profile for {mode.value}")

        url = f"{self.base_url}/route/v1/{profile}/{self.format_coordinates([origin, destination])}"
        params = {
            "alternatives": "true" if alternatives else "false",
            "geometries": "geojson",
            "overview": "full",
            "steps": "false",
        }

        try:
            response = self.http.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise RoutingError(f"OSRM request failed: {e}") from e
        except ValueError as e:
            raise RoutingError(f"OSRM returned invalid JSON: {e}") from e

        if data.get("code") != "Ok":
            raise RoutingError(f"OSRM error: {data.get('code')} {data.get('message', '')}".strip())

        routes = []
        for entry in data.get("routes", []):
            coords = entry.get("geometry", {}).get("coordinates", [])
            path = [(lat, lng) for lng, lat in coords]
            if len(path) < 2:
                continue
            routes.append(Route(
                path=path,
                destination=destination,
                distance_m=entry.get("distance"),
                duration_s=entry.get("duration"),
            ))
        return routes

    def compute_alternatives(self, origin: LatLng, destination: LatLng,
                             mode: TransportMode) -> list[Route]:
        """All routes OSRM offers from origin to destination, best first"""
        return self._fetch(origin, destination, mode, alternatives=True)

    def compute_route(self, origin: LatLng, destination: LatLng,
                      mode: TransportMode) -> Route:
        """The single best route; used to seed a session from the CLI"""
        routes = self._fetch(origin, destination, mode, alternatives=False)
        if not routes:
            raise RoutingError("OSRM returned no routes")
        return routes[0]
