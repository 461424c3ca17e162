"""
Search API routes.
"""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from db import SessionLocal
from domain.models import AnnotatedVenue, Location, LocationMode, OpeningFilter, SearchSettings
from repositories import VenuesRepository
from services.coffee_search import CoffeeSearchService
from services.formatting import format_distance, open_status_label
from services.location import PositionError, resolve_location
from settings import settings

router = APIRouter()
venues_repo = VenuesRepository()
logger = logging.getLogger(__name__)

_search_service: Optional[CoffeeSearchService] = None


def get_search_service() -> CoffeeSearchService:
    global _search_service
    if _search_service is None:
        _search_service = CoffeeSearchService(venues_repo=venues_repo)
    return _search_service


class CoordinatesSchema(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class SearchRequest(BaseModel):
    location_mode: LocationMode = LocationMode.CURRENT
    position: Optional[CoordinatesSchema] = None
    # Geolocation API error code reported by the browser instead of a position
    position_error: Optional[int] = None
    map_center: Optional[CoordinatesSchema] = None
    radius_m: int = Field(
        default=settings.SEARCH_DEFAULT_RADIUS_M,
        ge=settings.SEARCH_MIN_RADIUS_M,
        le=settings.SEARCH_MAX_RADIUS_M,
    )
    min_results: int = Field(default=settings.SEARCH_MIN_RESULTS, ge=0, le=settings.SEARCH_MAX_RESULTS_LIMIT)
    max_results: int = Field(default=settings.SEARCH_MAX_RESULTS, ge=1, le=settings.SEARCH_MAX_RESULTS_LIMIT)
    opening_filter: OpeningFilter = OpeningFilter.ANYTIME
    # the user's local time with its UTC offset; opening hours are checked against it
    client_time: Optional[datetime] = None


class VenueResponse(BaseModel):
    source_type: str
    source_id: int
    name: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    opening_hours: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    updated_at: Optional[str] = None
    distance_km: Optional[float] = None
    distance_label: Optional[str] = None
    open_now: Optional[bool] = None
    status_label: str


class StatusEventSchema(BaseModel):
    message: str
    severity: str


class SearchResponse(BaseModel):
    location: CoordinatesSchema
    venues: List[VenueResponse]
    statuses: List[StatusEventSchema]
    count: int


class SearchSettingsResponse(BaseModel):
    default_radius_m: int
    min_radius_m: int
    max_radius_m: int
    min_results: int
    max_results: int
    max_results_limit: int
    opening_filters: List[str]
    location_modes: List[str]


def venue_to_response(item: AnnotatedVenue) -> VenueResponse:
    """Convert an annotated venue to the API response shape."""
    venue = item.venue
    return VenueResponse(
        source_type=venue.source_type,
        source_id=venue.source_id,
        name=venue.name,
        latitude=venue.latitude,
        longitude=venue.longitude,
        address=venue.address,
        opening_hours=venue.opening_hours,
        phone=venue.phone,
        website=venue.website,
        suburb=venue.suburb,
        city=venue.city,
        updated_at=venue.updated_at.isoformat() if venue.updated_at else None,
        distance_km=venue.distance_km,
        distance_label=format_distance(venue.distance_km) if venue.distance_km is not None else None,
        open_now=item.open_now,
        status_label=open_status_label(item.open_now),
    )


@router.get("/settings", response_model=SearchSettingsResponse)
async def search_settings_defaults():
    """Defaults and bounds for the settings panel."""
    return SearchSettingsResponse(
        default_radius_m=settings.SEARCH_DEFAULT_RADIUS_M,
        min_radius_m=settings.SEARCH_MIN_RADIUS_M,
        max_radius_m=settings.SEARCH_MAX_RADIUS_M,
        min_results=settings.SEARCH_MIN_RESULTS,
        max_results=settings.SEARCH_MAX_RESULTS,
        max_results_limit=settings.SEARCH_MAX_RESULTS_LIMIT,
        opening_filters=[f.value for f in OpeningFilter],
        location_modes=[m.value for m in LocationMode],
    )


@router.post("", response_model=SearchResponse)
def search_coffee_shops(request: SearchRequest):
    """Find coffee shops near the requested location."""
    try:
        location = resolve_location(
            request.location_mode,
            position=Location(request.position.lat, request.position.lon) if request.position else None,
            map_center=Location(request.map_center.lat, request.map_center.lon) if request.map_center else None,
            position_error=request.position_error,
        )
    except PositionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    search_settings = SearchSettings(
        radius_m=request.radius_m,
        min_results=request.min_results,
        max_results=request.max_results,
        opening_filter=request.opening_filter,
    )
    outcome = get_search_service().search(location, search_settings, now=request.client_time)

    if settings.SEARCH_LOG_ENABLED:
        with SessionLocal() as session:
            venues_repo.log_search(session, location, request.location_mode, search_settings.radius_km)

    logger.debug(
        "search: mode=%s lat=%.4f lon=%.4f radius_m=%d -> %d venues",
        request.location_mode.value,
        location.lat,
        location.lon,
        request.radius_m,
        len(outcome.venues),
    )
    return SearchResponse(
        location=CoordinatesSchema(lat=location.lat, lon=location.lon),
        venues=[venue_to_response(v) for v in outcome.venues],
        statuses=[StatusEventSchema(message=s.message, severity=s.severity.value) for s in outcome.statuses],
        count=len(outcome.venues),
    )
