"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime, timezone
from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String, Text, UniqueConstraint

from db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VenueORM(Base):
    __tablename__ = "coffee_shops"
    __table_args__ = (
        UniqueConstraint("source_type", "source_id", name="uq_coffee_shops_source"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_type = Column(String, nullable=False)
    source_id = Column(BigInteger, nullable=False)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=False, index=True)
    longitude = Column(Float, nullable=False, index=True)
    address = Column(String, nullable=True)
    opening_hours = Column(Text, nullable=True)
    phone = Column(String, nullable=True)
    website = Column(String, nullable=True)
    suburb = Column(String, nullable=True)
    city = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=True)


class SearchLogORM(Base):
    __tablename__ = "search_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    search_lat = Column(Float, nullable=False)
    search_lon = Column(Float, nullable=False)
    search_mode = Column(String, nullable=False)
    radius_km = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
