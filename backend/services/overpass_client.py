"""
Overpass (OpenStreetMap) client for coffee venues.

Builds an Overpass QL query for cafe / coffee shop / coffee_shop cuisine
features (nodes and ways), POSTs it, and converts the JSON `elements` into
Venue records in the same shape the venue store persists.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from domain.models import Location, SourceType, UNNAMED_VENUE, Venue
from settings import settings

logger = logging.getLogger(__name__)

# (key, value) tag pairs that mark a coffee venue
COFFEE_TAG_FILTERS = [
    ("amenity", "cafe"),
    ("shop", "coffee"),
    ("cuisine", "coffee_shop"),
]
ELEMENT_TYPES = ("node", "way")


class OverpassError(RuntimeError):
    """Raised when the Overpass API cannot be reached or answers with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_address(tags: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Build a formatted address from OSM addr:* tags.

    "<housenumber> <street>" (or the street alone), then suburb, then city,
    comma-joined. None when none of those parts are present.
    """
    if not tags:
        return None

    parts: List[str] = []
    housenumber = tags.get("addr:housenumber")
    street = tags.get("addr:street")
    if housenumber and street:
        parts.append(f"{housenumber} {street}")
    elif street:
        parts.append(street)

    if tags.get("addr:suburb"):
        parts.append(tags["addr:suburb"])
    if tags.get("addr:city"):
        parts.append(tags["addr:city"])

    return ", ".join(parts) if parts else None


def _element_to_venue(element: Dict[str, Any]) -> Optional[Venue]:
    if element.get("type") == SourceType.NODE.value:
        lat, lon = element.get("lat"), element.get("lon")
    elif element.get("center"):
        lat, lon = element["center"].get("lat"), element["center"].get("lon")
    else:
        logger.warning("Way without center found, skipping: %s/%s", element.get("type"), element.get("id"))
        return None
    if lat is None or lon is None:
        logger.warning("Element without coordinates, skipping: %s/%s", element.get("type"), element.get("id"))
        return None

    tags = element.get("tags") or {}
    return Venue(
        source_type=element.get("type"),
        source_id=int(element["id"]),
        latitude=float(lat),
        longitude=float(lon),
        name=tags.get("name") or UNNAMED_VENUE,
        address=build_address(tags),
        opening_hours=tags.get("opening_hours") or None,
        phone=tags.get("phone") or tags.get("mobile") or None,
        website=tags.get("website") or None,
        suburb=tags.get("addr:suburb") or None,
        city=tags.get("addr:city") or None,
    )


def parse_overpass_data(data: Dict[str, Any]) -> List[Venue]:
    """Convert an Overpass JSON response into venues, dropping unusable elements."""
    elements = (data or {}).get("elements") or []
    if not elements:
        logger.warning("No coffee shops found in the Overpass API response")
        return []

    venues: List[Venue] = []
    for element in elements:
        try:
            venue = _element_to_venue(element)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed Overpass element, skipping: %s (%s)", element, exc)
            continue
        if venue is not None:
            venues.append(venue)
    logger.debug("Parsed %d venues from %d Overpass elements", len(venues), len(elements))
    return venues


def _union_body(selector: str) -> str:
    lines = [
        f'{element_type}["{key}"="{value}"]{selector};'
        for key, value in COFFEE_TAG_FILTERS
        for element_type in ELEMENT_TYPES
    ]
    return "\n".join(f"    {line}" for line in lines)


def build_nearby_query(radius_m: float, location: Location, timeout: int = 25) -> str:
    """Overpass QL for coffee venues within radius_m of location."""
    selector = f"(around:{radius_m},{location.lat},{location.lon})"
    return f"[out:json][timeout:{timeout}];\n(\n{_union_body(selector)}\n);\nout center;\n"


def build_country_query(iso_code: str, timeout: int = 60) -> str:
    """Overpass QL for every coffee venue inside a country (ISO 3166-1 alpha-2)."""
    return (
        f"[out:json][timeout:{timeout}];\n"
        f'area["ISO3166-1"="{iso_code}"][admin_level=2]->.country;\n'
        f"(\n{_union_body('(area.country)')}\n);\n"
        "out center;\n"
    )


class OverpassClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        query_timeout: Optional[int] = None,
        http_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url or settings.OVERPASS_URL
        self.query_timeout = (
            query_timeout if query_timeout is not None else settings.OVERPASS_QUERY_TIMEOUT
        )
        self.http_timeout = (
            http_timeout if http_timeout is not None else settings.OVERPASS_HTTP_TIMEOUT_SECONDS
        )
        self.session = session or requests.Session()
        self.headers = {"User-Agent": settings.OVERPASS_USER_AGENT}

    def _post_query(self, query: str, http_timeout: Optional[float] = None) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                self.base_url,
                data=query.encode("utf-8"),
                headers=self.headers,
                timeout=http_timeout if http_timeout is not None else self.http_timeout,
            )
        except requests.RequestException as exc:
            raise OverpassError(f"Overpass API request failed: {exc}") from exc

        if not resp.ok:
            raise OverpassError(
                f"Overpass API request failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise OverpassError(f"Overpass API returned invalid JSON: {exc}") from exc

    def fetch_nearby(self, radius_m: float, location: Location) -> List[Venue]:
        """Fetch coffee venues around a location. Raises OverpassError on failure."""
        query = build_nearby_query(radius_m, location, timeout=self.query_timeout)
        data = self._post_query(query)
        venues = parse_overpass_data(data)
        logger.info(
            "Overpass nearby: lat=%.6f lon=%.6f radius_m=%.0f got %d venues",
            location.lat,
            location.lon,
            radius_m,
            len(venues),
        )
        return venues

    def fetch_country(self, iso_code: str, force: bool = False) -> List[Venue]:
        """
        Fetch every coffee venue in a country. Data-collection only.

        This is a heavy query against a shared public service, so it refuses
        to run unless force=True.
        """
        if not force:
            raise OverpassError("Refusing to run a country-wide Overpass query without force=True")
        query = build_country_query(iso_code.upper(), timeout=max(self.query_timeout, 60))
        # leave the server its full query budget before giving up client-side
        data = self._post_query(query, http_timeout=max(self.http_timeout, 90))
        venues = parse_overpass_data(data)
        logger.info("Overpass country %s: got %d venues", iso_code.upper(), len(venues))
        return venues


_default_overpass_client: Optional[OverpassClient] = None


def get_default_overpass_client() -> OverpassClient:
    global _default_overpass_client
    if _default_overpass_client is None:
        _default_overpass_client = OverpassClient()
    return _default_overpass_client
