"""
Address search and distance endpoints backed by Google Maps.
"""

import logging
from typing import Annotated, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.api.deps import CurrentUser
from app.services.google_maps_client import (
    GoogleMapsClient,
    GoogleMapsError,
    get_google_maps_client,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ SCHEMAS ============

class PlaceSuggestion(BaseModel):
    place_id: str
    description: str
    main_text: str
    secondary_text: str


class PlaceDetails(BaseModel):
    place_id: str
    name: str
    formatted_address: str
    lat: float
    lng: float
    country_code: Optional[str] = None
    region: Optional[str] = None


class DistanceResponse(BaseModel):
    distance_km: float
    duration_minutes: int


# ============ HELPERS ============

def require_maps_client(
    client: Annotated[Optional[GoogleMapsClient], Depends(get_google_maps_client)],
) -> GoogleMapsClient:
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google Maps API key not configured",
        )
    return client


MapsClient = Annotated[GoogleMapsClient, Depends(require_maps_client)]


def parse_point(value: str, name: str) -> Tuple[float, float]:
    """Parse a "lat,lng" query parameter."""
    try:
        lat_str, lng_str = value.split(",")
        return float(lat_str), float(lng_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{name} must be formatted as 'lat,lng'",
        )


# ============ ENDPOINTS ============

@router.get("/autocomplete", response_model=List[PlaceSuggestion])
async def places_autocomplete(
    current_user: CurrentUser,
    client: MapsClient,
    input: Optional[str] = Query(None),
):
    """Swiss address suggestions for the text typed so far."""
    if not input or not input.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parameter 'input' is required")

    try:
        results = await client.places_autocomplete(input.strip())
    except GoogleMapsError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return [
        PlaceSuggestion(
            place_id=r.place_id,
            description=r.description,
            main_text=r.main_text,
            secondary_text=r.secondary_text,
        )
        for r in results
    ]


@router.get("/details", response_model=PlaceDetails)
async def place_details(
    current_user: CurrentUser,
    client: MapsClient,
    place_id: Optional[str] = Query(None),
):
    """Formatted address and coordinates of a suggestion."""
    if not place_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parameter 'place_id' is required")

    try:
        result = await client.get_place_details(place_id)
    except GoogleMapsError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Place not found")

    return PlaceDetails(
        place_id=result.place_id,
        name=result.name,
        formatted_address=result.formatted_address,
        lat=result.lat,
        lng=result.lng,
        country_code=result.country_code,
        region=result.region,
    )


@router.get("/distance", response_model=DistanceResponse)
async def road_distance(
    current_user: CurrentUser,
    client: MapsClient,
    origins: Optional[str] = Query(None),
    destinations: Optional[str] = Query(None),
):
    """Driving distance and duration between two "lat,lng" points."""
    if not origins or not destinations:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Parameters 'origins' and 'destinations' are required",
        )
    origin = parse_point(origins, "origins")
    destination = parse_point(destinations, "destinations")

    try:
        route = await client.get_route(origin, destination)
    except GoogleMapsError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if route is None:
        logger.warning("No route between %s and %s", origins, destinations)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to compute distance",
        )

    return DistanceResponse(distance_km=route.distance_km, duration_minutes=route.duration_minutes)
