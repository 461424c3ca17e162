"""
Core domain models for the coffee finder.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

UNNAMED_VENUE = "Unnamed Venue"


class SourceType(str, Enum):
    """OpenStreetMap element type a venue was read from."""
    NODE = "node"
    WAY = "way"


class OpeningFilter(str, Enum):
    """Which venues to show with respect to opening hours."""
    ANYTIME = "anytime"
    OPEN_NOW = "open_now"


class LocationMode(str, Enum):
    """Where the search location comes from."""
    CURRENT = "current"  # positioning sensor
    MAP_CENTER = "map_center"  # map viewport centre


class Severity(str, Enum):
    """Severity of a user-visible status message."""
    LOADING = "loading"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float


@dataclass
class SearchSettings:
    """
    Per-search settings chosen by the user.

    Built by the caller for each search and handed to the search service;
    changing them while a search runs only affects the next search.
    """
    radius_m: int = 5000
    min_results: int = 5
    max_results: int = 20
    opening_filter: OpeningFilter = OpeningFilter.ANYTIME

    @property
    def radius_km(self) -> float:
        return self.radius_m / 1000

    @property
    def effective_min_results(self) -> int:
        """Threshold for topping up from Overpass; never above max_results."""
        return min(self.min_results, self.max_results)


@dataclass
class Venue:
    """
    A coffee-serving point of interest.

    (source_type, source_id) identifies the venue in its origin system and is
    the conflict key for store writes. created_at/updated_at are assigned by
    the store; distance_km is only set on nearby reads.
    """
    source_type: str
    source_id: int
    latitude: float
    longitude: float
    name: str = UNNAMED_VENUE
    address: Optional[str] = None
    opening_hours: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    distance_km: Optional[float] = None


@dataclass(frozen=True)
class AnnotatedVenue:
    """A venue plus its open/closed/unknown state at annotation time. Never persisted."""
    venue: Venue
    open_now: Optional[bool]


@dataclass(frozen=True)
class StatusEvent:
    message: str
    severity: Severity


@dataclass
class SaveResult:
    """Outcome of a store write; failures are reported here instead of raised."""
    success: bool
    saved_count: int = 0
    error: Optional[str] = None


@dataclass
class SearchOutcome:
    """Everything a single search produced, for the presentation layer."""
    venues: List[AnnotatedVenue] = field(default_factory=list)
    statuses: List[StatusEvent] = field(default_factory=list)
    fetched_count: int = 0
    save_result: Optional[SaveResult] = None

    @property
    def last_status(self) -> Optional[StatusEvent]:
        return self.statuses[-1] if self.statuses else None
