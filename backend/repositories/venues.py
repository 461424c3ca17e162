"""
Venue store backed by SQLAlchemy (SQLite by default).

Reads are server-side nearby queries sorted by distance; writes are batch
upserts keyed by (source_type, source_id). Neither raises into the search
flow: reads degrade to an empty list and writes report a SaveResult.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from domain.models import Location, SaveResult, Venue
from repositories.models import SearchLogORM, VenueORM, utcnow
from services.geo import bounding_box

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_DAYS = 14
UPSERT_CHUNK_SIZE = 500

_UPDATABLE_COLUMNS = (
    "name",
    "latitude",
    "longitude",
    "address",
    "opening_hours",
    "phone",
    "website",
    "suburb",
    "city",
    "updated_at",
)


def _as_naive_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def filter_fresh(
    venues: Optional[Iterable[Venue]],
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    now: Optional[datetime] = None,
) -> List[Venue]:
    """
    Drop venues whose last update is older than max_age_days.

    updated_at is used when present, otherwise created_at. A venue with
    neither timestamp counts as stale. Naive timestamps are taken as UTC.
    """
    if not venues:
        return []
    now = _as_naive_utc(now) if now else utcnow()
    max_age = timedelta(days=max_age_days)

    fresh: List[Venue] = []
    for venue in venues:
        timestamp = _as_naive_utc(venue.updated_at or venue.created_at)
        if timestamp is None:
            continue
        if now - timestamp <= max_age:
            fresh.append(venue)
    return fresh


def _venue_from_orm(orm: VenueORM, distance_km: Optional[float] = None) -> Venue:
    return Venue(
        source_type=orm.source_type,
        source_id=orm.source_id,
        latitude=orm.latitude,
        longitude=orm.longitude,
        name=orm.name,
        address=orm.address,
        opening_hours=orm.opening_hours,
        phone=orm.phone,
        website=orm.website,
        suburb=orm.suburb,
        city=orm.city,
        created_at=orm.created_at,
        updated_at=orm.updated_at,
        distance_km=distance_km,
    )


def _venue_to_row(venue: Venue, now: datetime) -> dict:
    return {
        "source_type": getattr(venue.source_type, "value", venue.source_type),
        "source_id": int(venue.source_id),
        "name": venue.name,
        "latitude": venue.latitude,
        "longitude": venue.longitude,
        "address": venue.address,
        "opening_hours": venue.opening_hours,
        "phone": venue.phone,
        "website": venue.website,
        "suburb": venue.suburb,
        "city": venue.city,
        "created_at": now,
        "updated_at": now,
    }


def _insert_for(session: Session):
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class VenuesRepository:
    """Nearby reads, upserts and search logging for coffee venues."""

    def find_nearby(
        self,
        session: Session,
        location: Location,
        radius_km: float,
        max_results: int = 10,
    ) -> List[Venue]:
        """
        Venues within radius_km of location, nearest first, at most max_results.

        Distance is computed in the database. Errors are logged and yield [].
        """
        try:
            min_lat, max_lat, min_lon, max_lon = bounding_box(location.lat, location.lon, radius_km)
            distance = func.haversine_km(
                VenueORM.latitude, VenueORM.longitude, location.lat, location.lon
            )
            rows = (
                session.query(VenueORM, distance.label("distance_km"))
                .filter(
                    VenueORM.latitude.between(min_lat, max_lat),
                    VenueORM.longitude.between(min_lon, max_lon),
                    distance <= radius_km,
                )
                .order_by(distance, VenueORM.id)
                .limit(max_results)
                .all()
            )
        except Exception as exc:
            logger.error("Error fetching coffee shops from database: %s", exc)
            session.rollback()
            return []

        logger.debug(
            "find_nearby: lat=%.6f lon=%.6f radius_km=%.2f max=%d got %d rows",
            location.lat,
            location.lon,
            radius_km,
            max_results,
            len(rows),
        )
        return [_venue_from_orm(orm, distance_km) for orm, distance_km in rows]

    def upsert_venues(self, session: Session, venues: Iterable[Venue]) -> SaveResult:
        """
        Insert new venues and update existing ones by (source_type, source_id).

        Existing rows get every field and updated_at refreshed; created_at is
        kept. The batch commits as a whole or not at all.
        """
        venues = list(venues or [])
        if not venues:
            logger.warning("No coffee shops to save to the database")
            return SaveResult(success=True, saved_count=0)

        now = utcnow()
        # later duplicates of the same key win
        rows_by_key = {}
        for venue in venues:
            row = _venue_to_row(venue, now)
            rows_by_key[(row["source_type"], row["source_id"])] = row
        rows = list(rows_by_key.values())

        try:
            insert = _insert_for(session)
            for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
                stmt = insert(VenueORM).values(rows[start:start + UPSERT_CHUNK_SIZE])
                stmt = stmt.on_conflict_do_update(
                    index_elements=["source_type", "source_id"],
                    set_={col: stmt.excluded[col] for col in _UPDATABLE_COLUMNS},
                )
                session.execute(stmt)
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("Error saving coffee shops to database: %s", exc)
            return SaveResult(success=False, error=str(exc))

        logger.info("%d coffee shops saved to database", len(rows))
        return SaveResult(success=True, saved_count=len(rows))

    def get_venue(self, session: Session, source_type: str, source_id: int) -> Optional[Venue]:
        orm = (
            session.query(VenueORM)
            .filter(VenueORM.source_type == source_type, VenueORM.source_id == source_id)
            .first()
        )
        if not orm:
            return None
        return _venue_from_orm(orm)

    def count_venues(self, session: Session) -> int:
        return session.query(func.count(VenueORM.id)).scalar() or 0

    def log_search(
        self,
        session: Session,
        location: Optional[Location],
        search_mode: Optional[str],
        radius_km: Optional[float],
    ) -> bool:
        """Record a search. Best-effort: bad input or a failed write is logged and reported as False."""
        if not location or not search_mode or not radius_km:
            logger.warning("Invalid parameters for logging search")
            return False
        try:
            session.add(
                SearchLogORM(
                    search_lat=location.lat,
                    search_lon=location.lon,
                    search_mode=getattr(search_mode, "value", search_mode),
                    radius_km=radius_km,
                    created_at=utcnow(),
                )
            )
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("Error logging search: %s", exc)
            return False
        return True
