"""
Database setup for the coffee finder backend.
Provides SQLAlchemy engine/session utilities; SQLite by default.
"""
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from services.geo import haversine_km
from settings import settings

Base = declarative_base()


def _register_sqlite_functions(dbapi_connection, connection_record) -> None:
    """Expose haversine_km(lat1, lon1, lat2, lon2) to SQL so nearby queries run in the database."""
    dbapi_connection.create_function("haversine_km", 4, haversine_km, deterministic=True)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections get the geo SQL functions registered."""
    if database_url.startswith("sqlite"):
        db_file = database_url.split("///", 1)[-1]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
        # check_same_thread=False allows usage across FastAPI threads
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _register_sqlite_functions)
        return engine
    return create_engine(database_url)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine = None) -> None:
    """Create tables if they don't exist."""
    from repositories import models  # noqa: F401  Ensures models are registered

    Base.metadata.create_all(bind=bind or engine)

