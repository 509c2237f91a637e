"""
Google Maps API Client for address search and road distances.

This service provides:
- Places Autocomplete: Swiss street addresses while the user types
- Place Details: coordinates of a selected suggestion
- Distance Matrix: road distance and duration between pickup and delivery

Usage:
    client = GoogleMapsClient(api_key="your-api-key")

    results = await client.places_autocomplete("Rue du Rhône 1")
    place = await client.get_place_details(results[0].place_id)

    route = await client.get_route(
        origin=(46.2044, 6.1432),  # Genève
        destination=(46.5197, 6.6323),  # Lausanne
    )
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class GeocodingResult:
    """Result from a place details lookup."""
    place_id: str
    name: str
    formatted_address: str
    lat: float
    lng: float
    country_code: Optional[str] = None
    region: Optional[str] = None
    types: List[str] = field(default_factory=list)


@dataclass
class PlaceAutocompleteResult:
    """Result from places autocomplete search."""
    place_id: str
    description: str
    main_text: str
    secondary_text: str
    types: List[str] = field(default_factory=list)


@dataclass
class RouteEstimate:
    """Road distance and travel time between two points."""
    distance_km: float
    duration_minutes: int


class GoogleMapsError(Exception):
    """Base exception for Google Maps API errors."""
    pass


def _format_point(point: Tuple[float, float]) -> str:
    return f"{point[0]},{point[1]}"


class GoogleMapsClient:
    """
    Async client for Google Maps APIs.

    An httpx transport can be passed in to route requests elsewhere
    (tests use httpx.MockTransport).
    """

    BASE_URL = "https://maps.googleapis.com/maps/api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        if not self.api_key:
            raise GoogleMapsError("Google Maps API key not configured")
        self._transport = transport
        self._timeout = timeout

    async def _request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Make an async request to Google Maps API."""
        params["key"] = self.api_key
        url = f"{self.BASE_URL}/{endpoint}/json"

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(url, params=params, timeout=self._timeout)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Google Maps %s request failed: %s", endpoint, e)
            raise GoogleMapsError(f"Google Maps request failed: {e}") from e

        if data.get("status") not in ("OK", "ZERO_RESULTS"):
            error_msg = data.get("error_message", data.get("status", "Unknown error"))
            logger.error("Google Maps %s returned %s", endpoint, error_msg)
            raise GoogleMapsError(f"Google Maps API error: {error_msg}")

        return data

    async def places_autocomplete(
        self,
        query: str,
        country: Optional[str] = "ch",
        types: Optional[str] = "address",
        language: str = "fr",
    ) -> List[PlaceAutocompleteResult]:
        """
        Search for addresses using autocomplete.

        Args:
            query: Text typed by the user
            country: ISO 2-letter country code to restrict results (default: Switzerland)
            types: Place types to include (default: street addresses)
            language: Language for results (default: French)
        """
        params = {
            "input": query,
            "language": language,
        }
        if country:
            params["components"] = f"country:{country}"
        if types:
            params["types"] = types

        data = await self._request("place/autocomplete", params)

        results = []
        for prediction in data.get("predictions", []):
            formatting = prediction.get("structured_formatting", {})
            results.append(PlaceAutocompleteResult(
                place_id=prediction["place_id"],
                description=prediction["description"],
                main_text=formatting.get("main_text", ""),
                secondary_text=formatting.get("secondary_text", ""),
                types=prediction.get("types", []),
            ))
        return results

    async def get_place_details(
        self,
        place_id: str,
        language: str = "fr",
    ) -> Optional[GeocodingResult]:
        """
        Get address and coordinates of a place by its ID.

        Returns:
            GeocodingResult, or None if Google has no result for the ID.
        """
        params = {
            "place_id": place_id,
            "fields": "place_id,name,formatted_address,geometry,address_components,types",
            "language": language,
        }

        data = await self._request("place/details", params)
        result = data.get("result")
        if not result:
            return None

        location = result.get("geometry", {}).get("location", {})

        country_code = None
        region = None
        for component in result.get("address_components", []):
            if "country" in component.get("types", []):
                country_code = component.get("short_name")
            elif "administrative_area_level_1" in component.get("types", []):
                region = component.get("long_name")

        return GeocodingResult(
            place_id=result.get("place_id", place_id),
            name=result.get("name", ""),
            formatted_address=result.get("formatted_address", ""),
            lat=float(location.get("lat", 0)),
            lng=float(location.get("lng", 0)),
            country_code=country_code,
            region=region,
            types=result.get("types", []),
        )

    async def get_distance_matrix(
        self,
        origins: List[Tuple[float, float]],
        destinations: List[Tuple[float, float]],
        mode: str = "driving",
    ) -> Dict[str, Any]:
        """
        Get distances and durations between multiple origins and destinations.

        Returns:
            {"origin_addresses", "destination_addresses", "matrix"} where each
            matrix cell is {"distance_km", "duration_minutes"} or None.
        """
        params = {
            "origins": "|".join(_format_point(p) for p in origins),
            "destinations": "|".join(_format_point(p) for p in destinations),
            "mode": mode,
            "units": "metric",
        }

        data = await self._request("distancematrix", params)

        results = []
        for row in data.get("rows", []):
            row_results = []
            for element in row.get("elements", []):
                if element.get("status") == "OK":
                    row_results.append({
                        "distance_km": element["distance"]["value"] / 1000,
                        "duration_minutes": round(element["duration"]["value"] / 60),
                    })
                else:
                    row_results.append(None)
            results.append(row_results)

        return {
            "origin_addresses": data.get("origin_addresses", []),
            "destination_addresses": data.get("destination_addresses", []),
            "matrix": results,
        }

    async def get_route(
        self,
        origin: Tuple[float, float],
        destination: Tuple[float, float],
        mode: str = "driving",
    ) -> Optional[RouteEstimate]:
        """Road distance (km) and duration (minutes) from origin to destination, or None."""
        matrix = await self.get_distance_matrix([origin], [destination], mode=mode)
        rows = matrix["matrix"]
        if not rows or not rows[0] or rows[0][0] is None:
            return None
        cell = rows[0][0]
        return RouteEstimate(
            distance_km=cell["distance_km"],
            duration_minutes=cell["duration_minutes"],
        )


def get_google_maps_client() -> Optional[GoogleMapsClient]:
    """FastAPI dependency: client configured from settings, None without an API key."""
    api_key = get_settings().google_maps_api_key
    if not api_key:
        return None
    return GoogleMapsClient(api_key=api_key)
