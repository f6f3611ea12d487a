import asyncio
import logging
from typing import Protocol

import requests

from app.core.errors import ValidationError

logger = logging.getLogger(__name__)


class RouteClient(Protocol):
    async def distance_km(self, origin: str, destination: str) -> float:
        ...


class DistanceMatrixClient:
    """
    RouteClient implementation using the Google Distance Matrix API.
    Requires an API key (set via GOOGLE_MAPS_API_KEY).
    """

    URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

    def __init__(self, api_key: str, timeout: int = 8):
        self.api_key = api_key
        self.timeout = timeout

    async def distance_km(self, origin: str, destination: str) -> float:
        return await asyncio.to_thread(self._fetch, origin, destination)

    def _fetch(self, origin: str, destination: str) -> float:
        params = {
            "origins": origin,
            "destinations": destination,
            "units": "metric",
            "key": self.api_key,
        }
        try:
            resp = requests.get(self.URL, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except requests.RequestException as exc:
            logger.warning("Distance Matrix request failed: %s", exc)
            raise ValidationError(
                "Could not determine route distance", {"distance": "route lookup failed"}
            ) from exc

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            element = {}
        if data.get("status") != "OK" or element.get("status") != "OK":
            logger.warning("Distance Matrix returned no route: %s", data.get("status"))
            raise ValidationError(
                "No route found between pickup and drop-off", {"distance": "no route found"}
            )
        return round(element["distance"]["value"] / 1000.0, 2)
